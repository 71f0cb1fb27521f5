from __future__ import annotations

import logging
import time
from typing import Callable, Optional

from openai import OpenAI

from autopost.core.settings import settings
from autopost.services.prompts import DEFAULT_SCENE_STYLES, format_image_prompt

logger = logging.getLogger(__name__)

IMAGE_MODEL = "dall-e-3"
IMAGE_SIZE = "1024x1792"  # closest DALL-E size to 9:16
REQUEST_SPACING_SECONDS = 2.0


class ImageGenerator:
    def __init__(self, client: Optional[OpenAI] = None,
                 sleep: Callable[[float], None] = time.sleep,
                 spacing: float = REQUEST_SPACING_SECONDS):
        self._client = client
        self.sleep = sleep
        self.spacing = spacing

    @property
    def client(self) -> OpenAI:
        if self._client is None:
            if not settings.openai_api_key:
                raise RuntimeError("OPENAI_API_KEY is not configured")
            self._client = OpenAI(api_key=settings.openai_api_key)
        return self._client

    def generate_image(self, product_name: str, scene: str, style: str) -> str:
        """One DALL-E image; returns its URL."""
        response = self.client.images.generate(
            model=IMAGE_MODEL,
            prompt=format_image_prompt(product_name, scene, style),
            n=1,
            size=IMAGE_SIZE,
            quality="standard",
            style="vivid",
        )
        url = response.data[0].url if response.data else None
        if not url:
            raise RuntimeError("No image URL returned from DALL-E")
        return url

    def generate_scene_images(self, product_name: str, scenes: list[str],
                              style: Optional[str] = None) -> list[str]:
        """
        One image per scene, requests spaced apart.
        Failed scenes are skipped; the caller decides what an empty result means.
        """
        urls = []
        for i, scene in enumerate(scenes):
            scene_style = style or DEFAULT_SCENE_STYLES[i % len(DEFAULT_SCENE_STYLES)]
            logger.info(f"[images] Scene {i + 1}/{len(scenes)} ({scene_style})")
            try:
                urls.append(self.generate_image(product_name, scene, scene_style))
            except Exception as e:
                logger.warning(f"[images] Scene {i + 1} failed, skipping: {e}")

            if i < len(scenes) - 1:
                self.sleep(self.spacing)

        logger.info(f"[images] Generated {len(urls)}/{len(scenes)} images")
        return urls
