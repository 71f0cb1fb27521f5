from __future__ import annotations

import logging
import time
from typing import Callable, Optional

from google import genai
from google.genai import types

from autopost.core.errors import PipelineError, StageTimeoutError
from autopost.core.settings import settings
from autopost.services.prompts import format_video_prompt

logger = logging.getLogger(__name__)

POLL_INTERVAL_SECONDS = 10.0
MAX_POLLS = 60  # 10 minutes at the default interval
HTTP_TIMEOUT_MS = 120_000  # per request, including the final download

PollCallback = Callable[[int, int], None]


class TextToVideoClient:
    def __init__(self, client: Optional[genai.Client] = None, model: Optional[str] = None,
                 sleep: Callable[[float], None] = time.sleep,
                 poll_interval: float = POLL_INTERVAL_SECONDS, max_polls: int = MAX_POLLS,
                 clock: Callable[[], float] = time.monotonic, max_wait: Optional[float] = None):
        self._client = client
        self.model = model or settings.veo_model
        self.sleep = sleep
        self.poll_interval = poll_interval
        self.max_polls = max_polls
        self.clock = clock
        self.max_wait = poll_interval * max_polls if max_wait is None else max_wait

    @property
    def client(self) -> genai.Client:
        if self._client is None:
            if not settings.gemini_api_key:
                raise RuntimeError("GEMINI_API_KEY is not configured")
            self._client = genai.Client(
                api_key=settings.gemini_api_key,
                http_options=types.HttpOptions(timeout=HTTP_TIMEOUT_MS),
            )
        return self._client

    def generate(self, product_name: str, segments: list[str], output_path: str,
                 style: str = "product-showcase", aspect_ratio: str = "9:16",
                 on_poll: Optional[PollCallback] = None) -> str:
        """
        Submit one prompt, poll the long-running operation, save the video.
        Raises StageTimeoutError once max_polls or max_wait seconds are used up.
        """
        prompt = format_video_prompt(product_name, segments, aspect_ratio, style)
        logger.info(f"[veo] Submitting generation for {product_name} ({self.model})")

        operation = self.client.models.generate_videos(
            model=self.model,
            prompt=prompt,
            config=types.GenerateVideosConfig(aspect_ratio=aspect_ratio, number_of_videos=1),
        )

        polls = 0
        started = self.clock()
        while not operation.done:
            elapsed = self.clock() - started
            if polls >= self.max_polls or elapsed >= self.max_wait:
                raise StageTimeoutError(
                    f"Video generation timed out after {polls} poll(s), {elapsed:.0f}s"
                )
            polls += 1
            if on_poll:
                on_poll(polls, self.max_polls)
            self.sleep(self.poll_interval)
            operation = self.client.operations.get(operation)

        if getattr(operation, "error", None):
            raise PipelineError(f"Video generation failed: {operation.error}")

        videos = operation.response.generated_videos if operation.response else None
        if not videos or not videos[0].video:
            raise PipelineError("Video generation returned no video")

        video = videos[0].video
        self.client.files.download(file=video)
        video.save(output_path)
        logger.info(f"[veo] Saved generated video to {output_path}")
        return output_path
