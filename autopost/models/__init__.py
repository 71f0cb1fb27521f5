from autopost.models.account import TikTokAccount
from autopost.models.job import TikTokJob
from autopost.models.product import Product

__all__ = ["TikTokAccount", "TikTokJob", "Product"]
