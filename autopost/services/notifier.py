from __future__ import annotations

import logging
from typing import Optional, Protocol

import requests

from autopost.core.enums import JobStatus
from autopost.core.settings import settings

logger = logging.getLogger(__name__)

LINE_NOTIFY_URL = "https://notify-api.line.me/api/notify"
NOTIFY_TIMEOUT = 10.0

COLOR_SUCCESS = 0x00FF00
COLOR_FAILURE = 0xFF0000
COLOR_INFO = 0xFFFF00


class NotificationChannel(Protocol):
    name: str

    def send(self, title: str, message: str, color: int) -> None: ...


class LineNotifyChannel:
    name = "line"

    def __init__(self, token: str, session: Optional[requests.Session] = None):
        self.token = token
        self.session = session or requests.Session()

    def send(self, title: str, message: str, color: int) -> None:
        resp = self.session.post(
            LINE_NOTIFY_URL,
            headers={"Authorization": f"Bearer {self.token}"},
            data={"message": f"\n{title}\n{message}"},
            timeout=NOTIFY_TIMEOUT,
        )
        resp.raise_for_status()


class DiscordWebhookChannel:
    name = "discord"

    def __init__(self, webhook_url: str, session: Optional[requests.Session] = None):
        self.webhook_url = webhook_url
        self.session = session or requests.Session()

    def send(self, title: str, message: str, color: int) -> None:
        resp = self.session.post(
            self.webhook_url,
            json={"embeds": [{"title": title, "description": message, "color": color}]},
            timeout=NOTIFY_TIMEOUT,
        )
        resp.raise_for_status()


def channels_from_settings() -> list[NotificationChannel]:
    """Unset tokens mean the channel is off."""
    channels: list[NotificationChannel] = []
    if settings.line_notify_token:
        channels.append(LineNotifyChannel(settings.line_notify_token))
    if settings.discord_webhook_url:
        channels.append(DiscordWebhookChannel(settings.discord_webhook_url))
    return channels


def format_job_message(job) -> tuple[str, str, int]:
    """(title, body, embed colour) for a job's current status."""
    if job.status == JobStatus.DONE.value:
        title = "✅ TikTok post published"
        body = f"{job.product_name}\nPost ID: {job.tiktok_post_id or '-'}"
        color = COLOR_SUCCESS
    elif job.status == JobStatus.FAILED.value:
        title = "❌ TikTok job failed"
        body = f"{job.product_name}\nError: {job.error or 'unknown error'}"
        color = COLOR_FAILURE
    else:
        title = f"ℹ️ TikTok job {job.status.lower()}"
        body = f"{job.product_name}\n{job.progress_step or ''}".strip()
        color = COLOR_INFO
    return title, body, color


class Notifier:
    def __init__(self, channels: Optional[list[NotificationChannel]] = None):
        self.channels = channels if channels is not None else channels_from_settings()

    @property
    def enabled(self) -> bool:
        return bool(self.channels)

    def send(self, title: str, message: str, color: int = COLOR_INFO) -> int:
        """Best effort: returns how many channels accepted the message."""
        sent = 0
        for channel in self.channels:
            try:
                channel.send(title, message, color)
                sent += 1
            except Exception as e:
                logger.warning(f"[notify] {channel.name} notification failed: {e}")
        return sent

    def notify_job_status(self, job) -> int:
        if not self.channels:
            return 0
        title, body, color = format_job_message(job)
        return self.send(title, body, color)
