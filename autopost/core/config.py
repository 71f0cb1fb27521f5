"""
Pipeline Config - Immutable tuning knobs for scheduling, posting and rendering.
Loaded once per process; tests construct their own instance.
"""
from __future__ import annotations
import os
from dataclasses import dataclass, field
from datetime import timezone, tzinfo
from zoneinfo import ZoneInfo

def _env_int(name: str, default: int) -> int:
    v = os.getenv(name)
    return default if v is None or v.strip() == "" else int(v)

def _env_str(name: str, default: str) -> str:
    v = os.getenv(name)
    return default if v is None or v.strip() == "" else v

def _env_float(name: str, default: float) -> float:
    v = os.getenv(name)
    return default if v is None or v.strip() == "" else float(v)

def _env_bool(name: str, default: bool) -> bool:
    v = os.getenv(name)
    if v is None or v.strip() == "":
        return default
    return v.strip().lower() in ("1", "true", "yes", "on")

def _env_hours(name: str, default: tuple[int, ...]) -> tuple[int, ...]:
    v = os.getenv(name)
    if v is None or v.strip() == "":
        return default
    return tuple(int(h) for h in v.split(",") if h.strip())


@dataclass(frozen=True)
class PipelineConfig:
    # Scheduling
    best_posting_hours: tuple[int, ...] = field(
        default_factory=lambda: _env_hours("BEST_POSTING_HOURS", (12, 18, 20, 21))
    )
    min_post_interval_minutes: int = _env_int("MIN_POST_INTERVAL_MINUTES", 30)
    max_posts_per_day: int = _env_int("MAX_POSTS_PER_DAY", 10)
    timezone: str = _env_str("POSTING_TIMEZONE", "Asia/Bangkok")

    # Which stages run automatically
    auto_generate_hooks: bool = _env_bool("AUTO_GENERATE_HOOKS", True)
    auto_generate_video: bool = _env_bool("AUTO_GENERATE_VIDEO", True)
    auto_schedule: bool = _env_bool("AUTO_SCHEDULE", True)

    # Default composition options
    default_music: str = _env_str("DEFAULT_MUSIC", "upbeat")
    default_music_volume: float = _env_float("DEFAULT_MUSIC_VOLUME", 0.3)
    default_show_text_overlay: bool = _env_bool("DEFAULT_SHOW_TEXT_OVERLAY", True)
    default_text_style: str = _env_str("DEFAULT_TEXT_STYLE", "bold")

    # Posting sweep
    max_retries: int = _env_int("POST_MAX_RETRIES", 3)
    sweep_batch_size: int = _env_int("SWEEP_BATCH_SIZE", 10)
    inter_post_delay_seconds: float = _env_float("INTER_POST_DELAY_SECONDS", 2.0)
    pending_batch_delay_seconds: float = _env_float("PENDING_BATCH_DELAY_SECONDS", 1.0)

    def __post_init__(self):
        hours = tuple(sorted(set(self.best_posting_hours)))
        if not hours or any(h < 0 or h > 23 for h in hours):
            raise ValueError(f"best_posting_hours must be hours 0-23, got {self.best_posting_hours}")
        object.__setattr__(self, "best_posting_hours", hours)

    @property
    def zone(self) -> tzinfo:
        if self.timezone.upper() == "UTC":
            return timezone.utc
        return ZoneInfo(self.timezone)


pipeline_config = PipelineConfig()
