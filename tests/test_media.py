"""Tests for image fetching, AI image generation and text-to-video."""

import os
import unittest
from tempfile import TemporaryDirectory
from types import SimpleNamespace
from unittest import mock

import requests

from autopost.core.errors import FetchError, PipelineError, StageTimeoutError
from autopost.core.settings import settings
from autopost.services.image_generator import ImageGenerator
from autopost.services.media_fetcher import MediaFetcher, guess_extension
from autopost.services.storage import MediaStorage
from autopost.services.text_to_video import HTTP_TIMEOUT_MS, TextToVideoClient


class FakeHttp:
    def __init__(self, status=200, error=None):
        self.status = status
        self.error = error

    def get(self, url, headers=None, timeout=None):
        if self.error:
            raise self.error
        return SimpleNamespace(ok=200 <= self.status < 300, status_code=self.status, content=b"img")


class TestMediaFetcher(unittest.TestCase):
    def test_fetch_images_in_order(self):
        progress = []
        with TemporaryDirectory() as tmpdir:
            paths = MediaFetcher(session=FakeHttp()).fetch_images(
                ["https://x/a.png", "https://x/b"], tmpdir, on_progress=lambda d, t: progress.append((d, t)))
            self.assertEqual([os.path.basename(p) for p in paths], ["image_0.png", "image_1.jpg"])
            self.assertTrue(all(os.path.exists(p) for p in paths))
        self.assertEqual(progress, [(1, 2), (2, 2)])

    def test_errors(self):
        with TemporaryDirectory() as tmpdir:
            with self.assertRaises(FetchError):
                MediaFetcher(session=FakeHttp(status=404)).fetch_images(["https://x/a.jpg"], tmpdir)
            with self.assertRaises(FetchError):
                MediaFetcher(session=FakeHttp(error=requests.Timeout("slow"))).fetch_images(["https://x/a.jpg"], tmpdir)
            with self.assertRaises(FetchError):
                MediaFetcher(session=FakeHttp()).fetch_images([], tmpdir)

    def test_guess_extension(self):
        self.assertEqual(guess_extension("https://cf.shopee.co.th/file/abc.webp?x=1"), ".webp")
        self.assertEqual(guess_extension("https://cf.shopee.co.th/file/abc"), ".jpg")


class TestMediaStorage(unittest.TestCase):
    def test_url_for(self):
        with TemporaryDirectory() as tmpdir:
            storage = MediaStorage(tmpdir, "https://media.example.com/")
            path = os.path.join(storage.videos_dir, "a.mp4")
            self.assertEqual(storage.url_for(path), "https://media.example.com/static/videos/a.mp4")
            self.assertIsNone(storage.url_for(None))
            with self.assertRaises(ValueError):
                storage.url_for("/etc/passwd")


class FakeImages:
    def __init__(self, fail_on=()):
        self.fail_on = set(fail_on)
        self.prompts = []

    def generate(self, **kwargs):
        self.prompts.append(kwargs["prompt"])
        if len(self.prompts) in self.fail_on:
            raise RuntimeError("content_policy_violation")
        return SimpleNamespace(data=[SimpleNamespace(url=f"https://img/{len(self.prompts)}.png")])


class TestImageGenerator(unittest.TestCase):
    def test_failed_scenes_are_skipped(self):
        images = FakeImages(fail_on={2})
        sleeps = []
        generator = ImageGenerator(client=SimpleNamespace(images=images), sleep=sleeps.append)

        urls = generator.generate_scene_images("Desk Lamp", ["warm light", "on a desk", "gift box"])

        self.assertEqual(urls, ["https://img/1.png", "https://img/3.png"])
        self.assertEqual(sleeps, [2.0, 2.0])
        self.assertIn("Vertical 9:16", images.prompts[0])


class FakeVideo:
    def __init__(self):
        self.saved_to = None

    def save(self, path):
        self.saved_to = path


class FakeGenai:
    def __init__(self, polls_until_done=2, error=None):
        self.remaining = polls_until_done
        self.error = error
        self.video = FakeVideo()
        self.models = SimpleNamespace(generate_videos=lambda **kw: self._operation())
        self.operations = SimpleNamespace(get=lambda op: self._operation())
        self.files = SimpleNamespace(download=lambda file: None)

    def _operation(self):
        done = self.remaining <= 0
        self.remaining -= 1
        response = SimpleNamespace(generated_videos=[SimpleNamespace(video=self.video)])
        return SimpleNamespace(done=done, error=self.error if done else None, response=response)


class TestTextToVideo(unittest.TestCase):
    def test_polls_until_done(self):
        client = FakeGenai(polls_until_done=2)
        polls = []
        t2v = TextToVideoClient(client=client, model="veo-test", sleep=lambda s: None, max_polls=5)

        path = t2v.generate("Desk Lamp", ["hook"], "/tmp/out.mp4", on_poll=lambda n, m: polls.append(n))

        self.assertEqual(path, "/tmp/out.mp4")
        self.assertEqual(client.video.saved_to, "/tmp/out.mp4")
        self.assertEqual(polls, [1, 2])

    def test_timeout(self):
        t2v = TextToVideoClient(client=FakeGenai(polls_until_done=10), model="veo-test",
                                sleep=lambda s: None, max_polls=3)
        with self.assertRaises(StageTimeoutError):
            t2v.generate("Desk Lamp", ["hook"], "/tmp/out.mp4")

    def test_wall_clock_deadline(self):
        now = [0.0]

        def slow_sleep(seconds):
            now[0] += seconds * 4

        t2v = TextToVideoClient(client=FakeGenai(polls_until_done=100), model="veo-test", sleep=slow_sleep,
                                poll_interval=10.0, max_polls=60, clock=lambda: now[0])
        with self.assertRaises(StageTimeoutError) as ctx:
            t2v.generate("Desk Lamp", ["hook"], "/tmp/out.mp4")
        self.assertIn("poll(s)", str(ctx.exception))
        self.assertEqual(now[0], 600.0)

    def test_client_has_request_timeout(self):
        with mock.patch.object(settings, "gemini_api_key", "key"), \
                mock.patch("autopost.services.text_to_video.genai.Client") as client_cls:
            TextToVideoClient(model="veo-test").client
        http_options = client_cls.call_args.kwargs["http_options"]
        self.assertEqual(http_options.timeout, HTTP_TIMEOUT_MS)
        self.assertEqual(client_cls.call_args.kwargs["api_key"], "key")

    def test_operation_error(self):
        t2v = TextToVideoClient(client=FakeGenai(polls_until_done=0, error="quota"), model="veo-test",
                                sleep=lambda s: None)
        with self.assertRaises(PipelineError):
            t2v.generate("Desk Lamp", ["hook"], "/tmp/out.mp4")


if __name__ == "__main__":
    unittest.main()
