"""Tests for the TikTok HTTP client and its retry policy."""

import json
import os
import unittest
from tempfile import TemporaryDirectory

import requests

from autopost.core.errors import AuthError, RateLimitError, StageTimeoutError, TikTokAPIError
from autopost.services.tiktok_client import TikTokClient, request_with_retry


def response(status: int, body: dict | None = None, headers: dict | None = None) -> requests.Response:
    resp = requests.Response()
    resp.status_code = status
    resp._content = json.dumps(body or {}).encode()
    resp.headers.update(headers or {})
    return resp


class ScriptedSession:
    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    def request(self, method, url, timeout=None, **kwargs):
        self.calls.append((method, url, kwargs))
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


class TestRequestWithRetry(unittest.TestCase):
    def setUp(self):
        self.sleeps = []

    def _send(self, session):
        return request_with_retry(session, "GET", "https://open.tiktokapis.com/v2/x", sleep=self.sleeps.append)

    def test_429_honours_retry_after(self):
        session = ScriptedSession(response(429, headers={"Retry-After": "7"}), response(200))
        self.assertEqual(self._send(session).status_code, 200)
        self.assertEqual(self.sleeps, [7.0])

    def test_5xx_backs_off_exponentially(self):
        session = ScriptedSession(response(500), response(502), response(200))
        self.assertEqual(self._send(session).status_code, 200)
        self.assertEqual(self.sleeps, [1.0, 2.0])

    def test_4xx_is_not_retried(self):
        session = ScriptedSession(response(404))
        self.assertEqual(self._send(session).status_code, 404)
        self.assertEqual(len(session.calls), 1)
        self.assertEqual(self.sleeps, [])

    def test_transport_errors_are_retried(self):
        session = ScriptedSession(requests.ConnectionError("reset"), response(200))
        self.assertEqual(self._send(session).status_code, 200)
        self.assertEqual(self.sleeps, [1.0])

    def test_exhausted_5xx(self):
        session = ScriptedSession(response(503), response(503), response(503))
        with self.assertRaises(TikTokAPIError) as ctx:
            self._send(session)
        self.assertEqual(ctx.exception.status_code, 503)
        self.assertEqual(self.sleeps, [1.0, 2.0])

    def test_exhausted_429(self):
        session = ScriptedSession(*(response(429, headers={"Retry-After": "3"}) for _ in range(3)))
        with self.assertRaises(RateLimitError) as ctx:
            self._send(session)
        self.assertEqual(ctx.exception.retry_after, 3.0)


class TestTikTokClient(unittest.TestCase):
    def _client(self, *responses):
        self.session = ScriptedSession(*responses)
        self.sleeps = []
        return TikTokClient("key", "secret", "https://app.example.com/cb", session=self.session,
                            sleep=self.sleeps.append)

    def test_authorization_url(self):
        url = self._client().authorization_url("state123")
        self.assertTrue(url.startswith("https://www.tiktok.com/v2/auth/authorize/?"))
        self.assertIn("client_key=key", url)
        self.assertIn("state=state123", url)
        self.assertIn("video.publish", url.replace("%2C", ","))

    def test_exchange_code(self):
        client = self._client(response(200, {"access_token": "at", "refresh_token": "rt",
                                             "expires_in": 86400, "open_id": "o1", "scope": "video.publish"}))
        tokens = client.exchange_code("code-1")
        self.assertEqual((tokens.access_token, tokens.open_id, tokens.expires_in), ("at", "o1", 86400))
        self.assertEqual(self.session.calls[0][2]["data"]["grant_type"], "authorization_code")

    def test_token_error(self):
        client = self._client(response(400, {"error": "invalid_grant", "error_description": "expired"}))
        with self.assertRaises(AuthError):
            client.refresh_access_token("rt")

    def test_init_url_upload_truncates_title(self):
        client = self._client(response(200, {"data": {"publish_id": "p1"}, "error": {"code": "ok"}}))
        init = client.init_url_upload("at", "https://cdn.example.com/v.mp4", "x" * 400)

        self.assertEqual(init.publish_id, "p1")
        payload = self.session.calls[0][2]["json"]
        self.assertEqual(payload["source_info"], {"source": "PULL_FROM_URL", "video_url": "https://cdn.example.com/v.mp4"})
        self.assertEqual(len(payload["post_info"]["title"]), 150)

    def test_inbox_draft_has_no_post_info(self):
        client = self._client(response(200, {"data": {"publish_id": "p2"}, "error": {"code": "ok"}}))
        client.init_url_upload("at", "https://cdn.example.com/v.mp4", "cap", mode="INBOX_DRAFT")
        method, url, kwargs = self.session.calls[0]
        self.assertTrue(url.endswith("/post/publish/inbox/video/init/"))
        self.assertNotIn("post_info", kwargs["json"])

    def test_file_upload_chunks(self):
        client = self._client(
            response(200, {"data": {"publish_id": "p3", "upload_url": "https://upload.example/u"},
                           "error": {"code": "ok"}}),
            response(206), response(201),
        )
        init = client.init_file_upload("at", 25, "cap", chunk_size=10)
        source = self.session.calls[0][2]["json"]["source_info"]
        self.assertEqual((source["chunk_size"], source["total_chunk_count"]), (10, 2))

        with TemporaryDirectory() as tmpdir:
            path = os.path.join(tmpdir, "v.mp4")
            with open(path, "wb") as f:
                f.write(b"x" * 25)
            self.assertEqual(client.upload_chunks(init.upload_url, path, chunk_size=10), 2)

        ranges = [kwargs["headers"]["Content-Range"] for _, _, kwargs in self.session.calls[1:]]
        self.assertEqual(ranges, ["bytes 0-9/25", "bytes 10-24/25"])

    def test_api_error_code(self):
        client = self._client(response(200, {"error": {"code": "spam_risk_too_many_posts", "message": "slow down"}}))
        with self.assertRaises(TikTokAPIError) as ctx:
            client.init_url_upload("at", "https://cdn.example.com/v.mp4", "cap")
        self.assertEqual(ctx.exception.code, "spam_risk_too_many_posts")

    def test_unauthorized(self):
        client = self._client(response(401, {"error": {"code": "access_token_invalid", "message": "bad"}}))
        with self.assertRaises(AuthError):
            client.fetch_publish_status("at", "p1")

    def test_wait_for_publish(self):
        ok = {"code": "ok"}
        client = self._client(
            response(200, {"data": {"status": "PROCESSING_DOWNLOAD"}, "error": ok}),
            response(200, {"data": {"status": "PUBLISH_COMPLETE", "publicaly_available_post_id": [7301]}, "error": ok}),
        )
        result = client.wait_for_publish("at", "p1", interval=5)
        self.assertEqual((result.status, result.post_id), ("PUBLISH_COMPLETE", "7301"))
        self.assertEqual(self.sleeps, [5])

    def test_wait_for_publish_failed(self):
        client = self._client(response(200, {"data": {"status": "FAILED", "fail_reason": "file_format_check_failed"},
                                             "error": {"code": "ok"}}))
        with self.assertRaises(TikTokAPIError):
            client.wait_for_publish("at", "p1")

    def test_wait_for_publish_times_out(self):
        body = {"data": {"status": "PROCESSING_UPLOAD"}, "error": {"code": "ok"}}
        client = self._client(*(response(200, body) for _ in range(3)))
        with self.assertRaises(StageTimeoutError):
            client.wait_for_publish("at", "p1", interval=1, max_attempts=3)


if __name__ == "__main__":
    unittest.main()
