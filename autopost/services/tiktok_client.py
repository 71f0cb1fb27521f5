"""
TikTok Client - OAuth 2.0 + Content Posting API (v2).

Stateless: callers pass access tokens in; persistence of tokens and
quotas lives in services/publisher.py.
"""
from __future__ import annotations

import logging
import math
import os
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional
from urllib.parse import urlencode

import requests

from autopost.core.enums import PublishMode, PublishStatus, PrivacyLevel
from autopost.core.errors import AuthError, RateLimitError, StageTimeoutError, TikTokAPIError
from autopost.core.settings import settings

logger = logging.getLogger(__name__)

AUTH_URL = "https://www.tiktok.com/v2/auth/authorize/"
TOKEN_URL = "https://open.tiktokapis.com/v2/oauth/token/"
API_BASE = "https://open.tiktokapis.com/v2"
OAUTH_SCOPES = "user.info.basic,video.publish,video.upload"

MAX_ATTEMPTS = 3
BASE_DELAY_SECONDS = 1.0
HTTP_TIMEOUT = 30.0
UPLOAD_TIMEOUT = 120.0
CHUNK_SIZE = 10 * 1024 * 1024
MAX_CAPTION_LENGTH = 150

STATUS_POLL_INTERVAL = 5.0
STATUS_MAX_ATTEMPTS = 30

TERMINAL_SUCCESS = {PublishStatus.PUBLISH_COMPLETE.value, PublishStatus.SEND_TO_USER_INBOX.value}

Sleep = Callable[[float], None]


def request_with_retry(
    session: requests.Session,
    method: str,
    url: str,
    *,
    sleep: Sleep = time.sleep,
    max_attempts: int = MAX_ATTEMPTS,
    base_delay: float = BASE_DELAY_SECONDS,
    timeout: float = HTTP_TIMEOUT,
    **kwargs,
) -> requests.Response:
    """
    Send a request, retrying 429 and 5xx with doubling backoff.

    A 429 carrying Retry-After waits exactly that many seconds. Other 4xx
    responses are returned to the caller untouched. When attempts run out a
    429 raises RateLimitError and a 5xx or transport failure raises
    TikTokAPIError.
    """
    last_exc: Optional[Exception] = None
    last_resp: Optional[requests.Response] = None

    for attempt in range(max_attempts):
        delay = base_delay * (2 ** attempt)
        try:
            resp = session.request(method, url, timeout=timeout, **kwargs)
        except requests.RequestException as e:
            last_exc, last_resp = e, None
            logger.warning(f"[tiktok] {method} {url} failed ({e}), attempt {attempt + 1}/{max_attempts}")
        else:
            if resp.status_code == 429:
                last_exc, last_resp = None, resp
                retry_after = _retry_after(resp)
                if retry_after is not None:
                    delay = retry_after
                logger.warning(f"[tiktok] Rate limited on {url}, attempt {attempt + 1}/{max_attempts}")
            elif resp.status_code >= 500:
                last_exc, last_resp = None, resp
                logger.warning(f"[tiktok] {resp.status_code} from {url}, attempt {attempt + 1}/{max_attempts}")
            else:
                return resp

        if attempt < max_attempts - 1:
            sleep(delay)

    if last_resp is not None and last_resp.status_code == 429:
        raise RateLimitError(f"TikTok rate limit exceeded after {max_attempts} attempts",
                             retry_after=_retry_after(last_resp))
    if last_resp is not None:
        raise TikTokAPIError(f"TikTok API error {last_resp.status_code} after {max_attempts} attempts",
                             status_code=last_resp.status_code)
    raise TikTokAPIError(f"TikTok request failed after {max_attempts} attempts: {last_exc}", cause=last_exc)


def _retry_after(resp: requests.Response) -> Optional[float]:
    value = resp.headers.get("Retry-After")
    if value is None:
        return None
    try:
        return float(value)
    except ValueError:
        return None


@dataclass
class TokenSet:
    access_token: str
    refresh_token: Optional[str]
    expires_in: int
    open_id: Optional[str] = None
    scope: Optional[str] = None
    refresh_expires_in: Optional[int] = None


@dataclass
class UploadInit:
    publish_id: str
    upload_url: Optional[str] = None


@dataclass
class PublishStatusResult:
    status: str
    fail_reason: Optional[str] = None
    post_id: Optional[str] = None


class TikTokClient:
    def __init__(
        self,
        client_key: Optional[str] = None,
        client_secret: Optional[str] = None,
        redirect_uri: Optional[str] = None,
        session: Optional[requests.Session] = None,
        sleep: Sleep = time.sleep,
    ):
        self.client_key = client_key if client_key is not None else settings.tiktok_client_key
        self.client_secret = client_secret if client_secret is not None else settings.tiktok_client_secret
        self.redirect_uri = redirect_uri if redirect_uri is not None else settings.tiktok_redirect_uri
        self.session = session or requests.Session()
        self.sleep = sleep

    def _request(self, method: str, url: str, **kwargs) -> requests.Response:
        return request_with_retry(self.session, method, url, sleep=self.sleep, **kwargs)

    def _api(self, method: str, path: str, access_token: str, payload: Optional[dict] = None) -> dict:
        resp = self._request(
            method, f"{API_BASE}{path}",
            headers={
                "Authorization": f"Bearer {access_token}",
                "Content-Type": "application/json; charset=UTF-8",
            },
            json=payload,
        )
        try:
            body = resp.json()
        except ValueError:
            body = {}

        error = body.get("error") or {}
        code = error.get("code", "ok" if resp.ok else "http_error")
        if not resp.ok or code != "ok":
            message = error.get("message") or resp.text[:200]
            if resp.status_code == 401 or code in ("access_token_invalid", "scope_not_authorized"):
                raise AuthError(f"TikTok rejected the access token: {message}")
            raise TikTokAPIError(f"TikTok API {path} failed: {code} {message}".strip(),
                                 status_code=resp.status_code, code=code)
        return body.get("data") or {}

    # ------------------------------------------------------------------
    # OAuth
    # ------------------------------------------------------------------

    def authorization_url(self, state: str) -> str:
        query = urlencode({
            "client_key": self.client_key,
            "scope": OAUTH_SCOPES,
            "response_type": "code",
            "redirect_uri": self.redirect_uri,
            "state": state,
        })
        return f"{AUTH_URL}?{query}"

    def _token_request(self, form: dict[str, str]) -> TokenSet:
        resp = self._request(
            "POST", TOKEN_URL,
            headers={"Content-Type": "application/x-www-form-urlencoded"},
            data={"client_key": self.client_key, "client_secret": self.client_secret, **form},
        )
        try:
            body = resp.json()
        except ValueError:
            body = {}
        if not resp.ok or "access_token" not in body:
            reason = body.get("error_description") or body.get("error") or resp.text[:200]
            raise AuthError(f"TikTok token request failed: {reason}")
        return TokenSet(
            access_token=body["access_token"],
            refresh_token=body.get("refresh_token"),
            expires_in=int(body.get("expires_in", 0)),
            open_id=body.get("open_id"),
            scope=body.get("scope"),
            refresh_expires_in=body.get("refresh_expires_in"),
        )

    def exchange_code(self, code: str) -> TokenSet:
        return self._token_request({
            "code": code,
            "grant_type": "authorization_code",
            "redirect_uri": self.redirect_uri,
        })

    def refresh_access_token(self, refresh_token: str) -> TokenSet:
        return self._token_request({"grant_type": "refresh_token", "refresh_token": refresh_token})

    def get_user_info(self, access_token: str) -> dict[str, Any]:
        resp = self._request(
            "GET", f"{API_BASE}/user/info/",
            headers={"Authorization": f"Bearer {access_token}"},
            params={"fields": "open_id,union_id,avatar_url,display_name"},
        )
        if not resp.ok:
            raise AuthError(f"TikTok user info failed: HTTP {resp.status_code}")
        return (resp.json().get("data") or {}).get("user") or {}

    # ------------------------------------------------------------------
    # Content posting
    # ------------------------------------------------------------------

    @staticmethod
    def _post_info(caption: str, privacy_level: str) -> dict:
        return {
            "title": (caption or "")[:MAX_CAPTION_LENGTH],
            "privacy_level": privacy_level,
            "disable_duet": False,
            "disable_comment": False,
            "disable_stitch": False,
            "video_cover_timestamp_ms": 1000,
        }

    @staticmethod
    def _init_path(mode: str) -> str:
        if mode == PublishMode.INBOX_DRAFT.value:
            return "/post/publish/inbox/video/init/"
        return "/post/publish/video/init/"

    def init_url_upload(self, access_token: str, video_url: str, caption: str,
                        privacy_level: str = PrivacyLevel.PUBLIC_TO_EVERYONE.value,
                        mode: str = PublishMode.DIRECT_POST.value) -> UploadInit:
        """TikTok pulls the video from a public URL on a verified domain."""
        payload: dict[str, Any] = {"source_info": {"source": "PULL_FROM_URL", "video_url": video_url}}
        if mode == PublishMode.DIRECT_POST.value:
            payload["post_info"] = self._post_info(caption, privacy_level)
        data = self._api("POST", self._init_path(mode), access_token, payload)
        if not data.get("publish_id"):
            raise TikTokAPIError("TikTok upload init returned no publish_id")
        return UploadInit(publish_id=data["publish_id"])

    def init_file_upload(self, access_token: str, video_size: int, caption: str,
                         privacy_level: str = PrivacyLevel.PUBLIC_TO_EVERYONE.value,
                         mode: str = PublishMode.DIRECT_POST.value,
                         chunk_size: int = CHUNK_SIZE) -> UploadInit:
        chunk_size = min(chunk_size, video_size) or video_size
        total_chunks = max(1, video_size // chunk_size) if chunk_size else 1
        payload: dict[str, Any] = {
            "source_info": {
                "source": "FILE_UPLOAD",
                "video_size": video_size,
                "chunk_size": chunk_size,
                "total_chunk_count": total_chunks,
            }
        }
        if mode == PublishMode.DIRECT_POST.value:
            payload["post_info"] = self._post_info(caption, privacy_level)
        data = self._api("POST", self._init_path(mode), access_token, payload)
        if not data.get("publish_id") or not data.get("upload_url"):
            raise TikTokAPIError("TikTok upload init returned no publish_id/upload_url")
        return UploadInit(publish_id=data["publish_id"], upload_url=data["upload_url"])

    def upload_chunks(self, upload_url: str, video_path: str, chunk_size: int = CHUNK_SIZE) -> int:
        """
        PUT the file in Content-Range chunks. The final chunk absorbs any
        remainder, matching total_chunk_count from init_file_upload.
        """
        size = os.path.getsize(video_path)
        chunk_size = min(chunk_size, size) or size
        total_chunks = max(1, size // chunk_size)
        with open(video_path, "rb") as f:
            for index in range(total_chunks):
                start = index * chunk_size
                end = size - 1 if index == total_chunks - 1 else start + chunk_size - 1
                f.seek(start)
                chunk = f.read(end - start + 1)
                resp = self._request(
                    "PUT", upload_url,
                    headers={
                        "Content-Type": "video/mp4",
                        "Content-Length": str(len(chunk)),
                        "Content-Range": f"bytes {start}-{end}/{size}",
                    },
                    data=chunk,
                    timeout=UPLOAD_TIMEOUT,
                )
                if resp.status_code not in (200, 201, 206):
                    raise TikTokAPIError(f"Chunk {index + 1}/{total_chunks} upload failed: HTTP {resp.status_code}",
                                         status_code=resp.status_code)
                logger.info(f"[tiktok] Uploaded chunk {index + 1}/{total_chunks}")
        return total_chunks

    def fetch_publish_status(self, access_token: str, publish_id: str) -> PublishStatusResult:
        data = self._api("POST", "/post/publish/status/fetch/", access_token, {"publish_id": publish_id})
        post_ids = data.get("publicaly_available_post_id") or []
        post_id = str(post_ids[0]) if post_ids else data.get("video_id")
        return PublishStatusResult(
            status=data.get("status", PublishStatus.PROCESSING_UPLOAD.value),
            fail_reason=data.get("fail_reason"),
            post_id=str(post_id) if post_id else None,
        )

    def wait_for_publish(self, access_token: str, publish_id: str,
                         interval: float = STATUS_POLL_INTERVAL,
                         max_attempts: int = STATUS_MAX_ATTEMPTS) -> PublishStatusResult:
        """Poll until PUBLISH_COMPLETE / FAILED; StageTimeoutError after max_attempts."""
        for attempt in range(max_attempts):
            result = self.fetch_publish_status(access_token, publish_id)
            logger.info(f"[tiktok] Publish {publish_id}: {result.status} ({attempt + 1}/{max_attempts})")
            if result.status in TERMINAL_SUCCESS:
                return result
            if result.status == PublishStatus.FAILED.value:
                raise TikTokAPIError(f"TikTok publish failed: {result.fail_reason or 'unknown reason'}",
                                     code=result.fail_reason)
            if attempt < max_attempts - 1:
                self.sleep(interval)

        raise StageTimeoutError(
            f"Publish status polling timed out after {math.ceil(max_attempts * interval)}s"
        )
