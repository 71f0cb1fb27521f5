"""
Video Compositor - product images + narration -> 1080x1920 TikTok video.

Render steps (progress in brackets):
    fetch images [5-20] -> TTS [25] -> music bed [35] -> base render [45-70]
    -> subtitles [75] -> watermark [85] -> thumbnail [95] -> cleanup [98] -> done [100]

Only image fetch, TTS and the base render are fatal. Music, subtitles,
watermark and thumbnail degrade to a plainer video with a warning.
"""
from __future__ import annotations

import logging
import math
import os
import shutil
import tempfile
from dataclasses import dataclass, field, replace
from typing import Callable, Optional
from uuid import uuid4

import ffmpeg

from autopost.core.enums import TextStyle, WatermarkPosition, WatermarkType, ImageStyle
from autopost.core.errors import EncodeError, PipelineError
from autopost.services.encoder import Encoder, EncodeRequest
from autopost.services.media_fetcher import MediaFetcher
from autopost.services.subtitles import write_subtitles
from autopost.services.voice import VoiceSynthesizer

logger = logging.getLogger(__name__)

ProgressSink = Callable[[int, str], None]

WIDTH = 1080
HEIGHT = 1920
FPS = 30
# Images are cover-scaled to this multiple of the frame before zoompan
SUPERSAMPLE = 2

RENDER_TIMEOUT = 300.0
AI_RENDER_TIMEOUT = 600.0
STEP_TIMEOUT = 120.0
THUMBNAIL_WIDTH = 480
TEXT_TO_VIDEO_FALLBACK_DURATION = 8.0

BACKGROUND_MUSIC = {
    "upbeat": "upbeat.mp3",
    "chill": "chill.mp3",
    "energetic": "energetic.mp3",
    "corporate": "corporate.mp3",
}

_CENTER_X = "iw/2-(iw/zoom/2)"
_CENTER_Y = "ih/2-(ih/zoom/2)"

SINGLE_IMAGE_MOTION = {"z": "min(zoom+0.0015,1.5)", "x": _CENTER_X, "y": _CENTER_Y}

# Slideshow motions, cycled by image index
KEN_BURNS_VARIANTS = [
    ("zoom-in", {"z": "min(zoom+0.002,1.4)", "x": _CENTER_X, "y": _CENTER_Y}),
    ("zoom-out", {"z": "if(eq(on,1),1.4,max(zoom-0.002,1.0))", "x": _CENTER_X, "y": _CENTER_Y}),
    ("pan-right", {"z": "1.2", "x": "if(eq(on,1),0,min(x+2,iw-iw/zoom))", "y": _CENTER_Y}),
    ("pan-left", {"z": "1.2", "x": "if(eq(on,1),iw-iw/zoom,max(x-2,0))", "y": _CENTER_Y}),
]


@dataclass
class WatermarkSpec:
    type: str = WatermarkType.TEXT.value
    position: str = WatermarkPosition.BOTTOM_RIGHT.value
    opacity: float = 0.7
    scale: float = 0.15
    margin: int = 30
    image_path: Optional[str] = None
    text: Optional[str] = None


@dataclass
class VideoCompositionRequest:
    product_name: str
    image_urls: list[str]
    hooks: list[str] = field(default_factory=list)
    ending: str = ""
    background_music: Optional[str] = None
    music_volume: float = 0.3
    show_text_overlay: bool = False
    text_style: str = TextStyle.BOLD.value
    watermark: Optional[WatermarkSpec] = None

    @property
    def segments(self) -> list[str]:
        return [s for s in [*self.hooks, self.ending] if s and s.strip()]


@dataclass
class CompositionResult:
    video_path: str
    duration: float
    audio_path: Optional[str] = None
    thumbnail_path: Optional[str] = None


@dataclass(frozen=True)
class Slide:
    index: int
    duration: float
    frames: int
    motion: str


def plan_slides(duration: float, count: int, fps: int = FPS) -> list[Slide]:
    """Even split of the narration across images; motion cycles by index."""
    if count < 1:
        raise ValueError("At least one image is required")
    per_image = duration / count
    frames = max(1, math.ceil(per_image * fps))
    return [
        Slide(index=i, duration=per_image, frames=frames, motion=KEN_BURNS_VARIANTS[i % len(KEN_BURNS_VARIANTS)][0])
        for i in range(count)
    ]


def watermark_position(position: str, margin: int, text: bool = False) -> tuple[str, str]:
    """x/y expressions for overlay (image) or drawtext (text)."""
    ow, oh = ("tw", "th") if text else ("w", "h")
    m = int(margin)
    presets = {
        WatermarkPosition.TOP_LEFT.value: (f"{m}", f"{m}"),
        WatermarkPosition.TOP_RIGHT.value: (f"W-{ow}-{m}", f"{m}"),
        WatermarkPosition.BOTTOM_LEFT.value: (f"{m}", f"H-{oh}-{m}"),
        WatermarkPosition.BOTTOM_RIGHT.value: (f"W-{ow}-{m}", f"H-{oh}-{m}"),
        WatermarkPosition.CENTER.value: (f"(W-{ow})/2", f"(H-{oh})/2"),
    }
    return presets.get(position, presets[WatermarkPosition.BOTTOM_RIGHT.value])


def _ken_burns(image_path: str, frames: int, motion: dict, fps: int = FPS):
    return (
        ffmpeg.input(image_path).video
        .filter("scale", WIDTH * SUPERSAMPLE, HEIGHT * SUPERSAMPLE, force_original_aspect_ratio="increase")
        .filter("crop", WIDTH * SUPERSAMPLE, HEIGHT * SUPERSAMPLE)
        .filter("zoompan", z=motion["z"], x=motion["x"], y=motion["y"], d=frames, s=f"{WIDTH}x{HEIGHT}", fps=fps)
        .filter("setsar", 1)
    )


def build_base_render(image_paths: list[str], audio_path: str, output_path: str, duration: float, fps: int = FPS):
    """Ken Burns visual track (single image or concatenated slideshow) muxed with the narration."""
    if len(image_paths) == 1:
        frames = max(1, math.ceil(duration * fps))
        video = _ken_burns(image_paths[0], frames, SINGLE_IMAGE_MOTION, fps)
    else:
        slides = plan_slides(duration, len(image_paths), fps)
        variants = dict(KEN_BURNS_VARIANTS)
        parts = [_ken_burns(path, s.frames, variants[s.motion], fps) for path, s in zip(image_paths, slides)]
        video = ffmpeg.concat(*parts, v=1, a=0)

    audio = ffmpeg.input(audio_path).audio
    return ffmpeg.output(
        video, audio, output_path,
        vcodec="libx264", preset="fast", crf=23,
        acodec="aac", audio_bitrate="128k",
        pix_fmt="yuv420p", r=fps, t=f"{duration:.3f}",
        shortest=None, movflags="+faststart",
    )


def build_music_mix(voice_path: str, music_path: str, output_path: str, volume: float, duration: float):
    voice = ffmpeg.input(voice_path).audio.filter("volume", 1.0)
    music = ffmpeg.input(music_path, stream_loop=-1).audio.filter("volume", volume)
    mixed = ffmpeg.filter([voice, music], "amix", inputs=2, duration="first", dropout_transition=2)
    return ffmpeg.output(mixed, output_path, acodec="aac", audio_bitrate="192k", t=f"{duration:.3f}")


def build_subtitle_burn(video_path: str, ass_path: str, output_path: str):
    src = ffmpeg.input(video_path)
    video = src.video.filter("ass", ass_path)
    return ffmpeg.output(video, src.audio, output_path, vcodec="libx264", preset="fast", crf=23,
                         pix_fmt="yuv420p", acodec="copy")


def build_watermark(video_path: str, spec: WatermarkSpec, output_path: str):
    src = ffmpeg.input(video_path)
    if spec.type == WatermarkType.IMAGE.value:
        if not spec.image_path:
            raise ValueError("Image watermark needs image_path")
        x, y = watermark_position(spec.position, spec.margin)
        logo = (
            ffmpeg.input(spec.image_path)
            .filter("scale", f"iw*{spec.scale}", -1)
            .filter("format", "rgba")
            .filter("colorchannelmixer", aa=spec.opacity)
        )
        video = ffmpeg.overlay(src.video, logo, x=x, y=y)
    else:
        if not spec.text:
            raise ValueError("Text watermark needs text")
        x, y = watermark_position(spec.position, spec.margin, text=True)
        video = src.video.drawtext(
            text=spec.text, fontsize=36, fontcolor=f"white@{spec.opacity}",
            x=x, y=y, shadowcolor="black@0.5", shadowx=2, shadowy=2,
        )
    return ffmpeg.output(video, src.audio, output_path, vcodec="libx264", preset="fast", crf=23,
                         pix_fmt="yuv420p", acodec="copy")


def build_thumbnail(video_path: str, output_path: str):
    return (
        ffmpeg
        .input(video_path, ss=1)
        .filter("scale", THUMBNAIL_WIDTH, -1)
        .output(output_path, vframes=1, **{"q:v": 2})
    )


def thumbnail_path_for(video_path: str) -> str:
    return os.path.splitext(video_path)[0] + "_thumb.jpg"


class _Progress:
    """Forwards checkpoints to the sink, dropping any that would go backwards."""

    def __init__(self, sink: Optional[ProgressSink]):
        self.sink = sink
        self.last = -1

    def __call__(self, percent: int, step: str):
        if percent < self.last:
            return
        self.last = percent
        if self.sink:
            self.sink(percent, step)


class VideoCompositor:
    def __init__(
        self,
        fetcher: MediaFetcher,
        voice: VoiceSynthesizer,
        encoder: Encoder,
        output_dir: str = "static/videos",
        music_dir: str = "static/audio",
        image_generator=None,
        text_to_video=None,
        scratch_root: Optional[str] = None,
    ):
        self.fetcher = fetcher
        self.voice = voice
        self.encoder = encoder
        self.output_dir = output_dir
        self.music_dir = music_dir
        self.image_generator = image_generator
        self.text_to_video = text_to_video
        self.scratch_root = scratch_root
        os.makedirs(output_dir, exist_ok=True)

    def compose_video(self, request: VideoCompositionRequest, progress: Optional[ProgressSink] = None,
                      render_timeout: float = RENDER_TIMEOUT) -> CompositionResult:
        report = progress if isinstance(progress, _Progress) else _Progress(progress)
        if not request.image_urls:
            raise PipelineError("No images available for video")
        if not request.segments:
            raise PipelineError("No script text available for narration")

        video_id = uuid4().hex
        scratch = tempfile.mkdtemp(prefix="tiktok-video-", dir=self.scratch_root)
        logger.info(f"[compose] {request.product_name}: {len(request.image_urls)} image(s), scratch {scratch}")
        try:
            result = self._render(request, video_id, scratch, report, render_timeout)
        finally:
            report(98, "Cleaning up...")
            shutil.rmtree(scratch, ignore_errors=True)

        report(100, "Video ready")
        logger.info(f"[compose] Done: {result.video_path} ({result.duration:.2f}s)")
        return result

    def _render(self, request: VideoCompositionRequest, video_id: str, scratch: str,
                report: _Progress, render_timeout: float) -> CompositionResult:
        # 1. Images
        report(5, "Downloading images...")
        image_paths = self.fetcher.fetch_images(
            request.image_urls, scratch,
            on_progress=lambda done, total: report(10 + int(10 * done / total), f"Downloaded image {done}/{total}"),
        )

        # 2. Narration fixes the duration
        report(25, "Generating voiceover...")
        voice_path, duration = self.voice.synthesize_voice(request.segments, os.path.join(scratch, "voice.mp3"))
        audio_path = voice_path

        # 3. Music bed
        if request.background_music:
            report(35, "Mixing background music...")
            audio_path = self._mix_music(voice_path, request, duration, scratch)

        # 4. Base render
        report(45, "Rendering video...")
        base_path = os.path.join(scratch, "base.mp4")
        self.encoder.run(EncodeRequest(
            build_base_render(image_paths, audio_path, base_path, duration),
            base_path, label="base render", timeout=render_timeout,
        ))
        report(70, "Base video rendered")
        current = base_path

        # 5. Subtitles
        if request.show_text_overlay:
            report(75, "Adding text overlay...")
            current = self._burn_subtitles(current, request, duration, scratch)

        # 6. Watermark
        if request.watermark:
            report(85, "Adding watermark...")
            current = self._apply_watermark(current, request.watermark, scratch)

        video_path = os.path.join(self.output_dir, f"{video_id}.mp4")
        shutil.move(current, video_path)
        kept_audio = os.path.join(self.output_dir, f"{video_id}_audio{os.path.splitext(audio_path)[1]}")
        shutil.move(audio_path, kept_audio)

        # 7. Thumbnail
        report(95, "Generating thumbnail...")
        thumbnail = self._thumbnail(video_path)

        return CompositionResult(video_path=video_path, duration=duration, audio_path=kept_audio,
                                 thumbnail_path=thumbnail)

    def _mix_music(self, voice_path: str, request: VideoCompositionRequest, duration: float, scratch: str) -> str:
        track = BACKGROUND_MUSIC.get(request.background_music)
        music_path = os.path.join(self.music_dir, track) if track else None
        if not music_path or not os.path.exists(music_path):
            logger.warning(f"[compose] Music '{request.background_music}' not available, using voice only")
            return voice_path

        mixed_path = os.path.join(scratch, "mixed.m4a")
        try:
            self.encoder.run(EncodeRequest(
                build_music_mix(voice_path, music_path, mixed_path, request.music_volume, duration),
                mixed_path, label="music mix", timeout=STEP_TIMEOUT,
            ))
            return mixed_path
        except EncodeError as e:
            logger.warning(f"[compose] Music mix failed, using voice only: {e}")
            return voice_path

    def _burn_subtitles(self, video_path: str, request: VideoCompositionRequest, duration: float, scratch: str) -> str:
        out = os.path.join(scratch, "subtitled.mp4")
        try:
            ass_path = write_subtitles(request.segments, duration, request.text_style, os.path.join(scratch, "subs.ass"))
            if not ass_path:
                return video_path
            self.encoder.run(EncodeRequest(build_subtitle_burn(video_path, ass_path, out), out,
                                           label="subtitle burn", timeout=RENDER_TIMEOUT))
            return out
        except (EncodeError, OSError) as e:
            logger.warning(f"[compose] Text overlay failed, keeping video without it: {e}")
            return video_path

    def _apply_watermark(self, video_path: str, spec: WatermarkSpec, scratch: str) -> str:
        out = os.path.join(scratch, "watermarked.mp4")
        try:
            self.encoder.run(EncodeRequest(build_watermark(video_path, spec, out), out,
                                           label="watermark", timeout=RENDER_TIMEOUT))
            return out
        except (EncodeError, ValueError) as e:
            logger.warning(f"[compose] Watermark failed, keeping video without it: {e}")
            return video_path

    def _thumbnail(self, video_path: str) -> Optional[str]:
        out = thumbnail_path_for(video_path)
        try:
            self.encoder.run(EncodeRequest(build_thumbnail(video_path, out), out,
                                           label="thumbnail", timeout=60.0))
            return out
        except EncodeError as e:
            logger.warning(f"[compose] Thumbnail generation failed: {e}")
            return None

    # ------------------------------------------------------------------
    # Alternate backends
    # ------------------------------------------------------------------

    def compose_ai_slideshow(self, request: VideoCompositionRequest,
                             style: Optional[str] = None,
                             progress: Optional[ProgressSink] = None) -> CompositionResult:
        """Generate one image per script segment, then render them as a slideshow."""
        if self.image_generator is None:
            raise PipelineError("AI image generation is not configured")

        report = _Progress(progress)
        report(2, "Generating AI images...")
        urls = self.image_generator.generate_scene_images(request.product_name, request.segments, style)
        if not urls:
            raise PipelineError("Failed to generate any AI images")
        logger.info(f"[compose] Generated {len(urls)} AI image(s)")
        return self.compose_video(replace(request, image_urls=urls), report, render_timeout=AI_RENDER_TIMEOUT)

    def compose_text_to_video(self, request: VideoCompositionRequest,
                              style: str = ImageStyle.PRODUCT_SHOWCASE.value,
                              progress: Optional[ProgressSink] = None) -> CompositionResult:
        """Single prompt to the text-to-video service; its audio is kept as-is."""
        if self.text_to_video is None:
            raise PipelineError("Text-to-video generation is not configured")

        report = _Progress(progress)
        report(5, "Submitting video generation request...")
        video_path = os.path.join(self.output_dir, f"{uuid4().hex}.mp4")
        self.text_to_video.generate(
            request.product_name, request.segments, video_path, style=style,
            on_poll=lambda n, limit: report(10 + int(80 * n / limit), f"Waiting for video generation ({n}/{limit})"),
        )

        try:
            duration = self.encoder.probe_duration(video_path)
        except EncodeError as e:
            logger.warning(f"[compose] Could not probe generated video: {e}")
            duration = TEXT_TO_VIDEO_FALLBACK_DURATION

        report(95, "Generating thumbnail...")
        thumbnail = self._thumbnail(video_path)
        report(100, "Video ready")
        return CompositionResult(video_path=video_path, duration=duration, thumbnail_path=thumbnail)
