import logging
import os
from typing import Callable, Optional
from urllib.parse import urlparse

import requests

from autopost.core.errors import FetchError

logger = logging.getLogger(__name__)

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
_IMAGE_EXTS = {".jpg", ".jpeg", ".png", ".webp", ".gif"}

ProgressCallback = Callable[[int, int], None]


class MediaFetcher:
    def __init__(self, session: Optional[requests.Session] = None, timeout: float = 30.0):
        self.session = session or requests.Session()
        self.timeout = timeout

    def fetch_image(self, url: str, dest_path: str) -> str:
        """
        Download one image to dest_path.
        Raises FetchError on transport errors or non-2xx responses.
        """
        try:
            resp = self.session.get(url, headers={"User-Agent": USER_AGENT}, timeout=self.timeout)
        except requests.RequestException as e:
            raise FetchError(f"Failed to download image {url}: {e}", cause=e) from e

        if not resp.ok:
            raise FetchError(f"Failed to download image {url}: HTTP {resp.status_code}")

        with open(dest_path, "wb") as f:
            f.write(resp.content)
        return dest_path

    def fetch_images(
        self,
        urls: list[str],
        dest_dir: str,
        on_progress: Optional[ProgressCallback] = None,
    ) -> list[str]:
        """Download every URL in order; the first failure aborts the batch."""
        if not urls:
            raise FetchError("No image URLs to fetch")

        os.makedirs(dest_dir, exist_ok=True)
        paths = []
        for i, url in enumerate(urls):
            path = os.path.join(dest_dir, f"image_{i}{guess_extension(url)}")
            self.fetch_image(url, path)
            paths.append(path)
            logger.info(f"[fetch] Downloaded image {i + 1}/{len(urls)}")
            if on_progress:
                on_progress(i + 1, len(urls))
        return paths


def guess_extension(url: str) -> str:
    ext = os.path.splitext(urlparse(url).path)[1].lower()
    return ext if ext in _IMAGE_EXTS else ".jpg"
