"""Tests for slide planning, filter graphs and the composition flow."""

import os
import unittest
from tempfile import TemporaryDirectory

from autopost.core.errors import PipelineError
from autopost.services.compositor import (
    VideoCompositionRequest, VideoCompositor, WatermarkSpec,
    build_base_render, build_watermark, plan_slides, thumbnail_path_for, watermark_position,
)
from fakes import FakeEncoder, FakeFetcher, FakeVoice


class TestSlidePlanning(unittest.TestCase):
    def test_even_split_and_cycled_motion(self):
        slides = plan_slides(9.0, 3)
        self.assertEqual([s.motion for s in slides], ["zoom-in", "zoom-out", "pan-right"])
        self.assertTrue(all(abs(s.duration - 3.0) < 1e-9 for s in slides))
        self.assertTrue(all(s.frames == 90 for s in slides))

    def test_frames_round_up(self):
        slides = plan_slides(10.0, 4)
        self.assertEqual(slides[0].frames, 75)
        self.assertEqual(slides[3].motion, "pan-left")
        self.assertEqual(plan_slides(10.0, 5)[4].motion, "zoom-in")

    def test_needs_an_image(self):
        with self.assertRaises(ValueError):
            plan_slides(5.0, 0)


class TestFilterGraphs(unittest.TestCase):
    def test_slideshow_graph(self):
        args = build_base_render(["a.jpg", "b.jpg"], "voice.mp3", "out.mp4", 6.0).get_args()
        graph = args[args.index("-filter_complex") + 1]
        self.assertEqual(graph.count("zoompan"), 2)
        self.assertIn("concat", graph)
        self.assertIn("1080x1920", graph)
        self.assertEqual(args[args.index("-t") + 1], "6.000")
        self.assertEqual(args[-1], "out.mp4")

    def test_single_image_graph_has_no_concat(self):
        args = build_base_render(["a.jpg"], "voice.mp3", "out.mp4", 4.0).get_args()
        graph = args[args.index("-filter_complex") + 1]
        self.assertIn("zoompan", graph)
        self.assertNotIn("concat", graph)

    def test_watermark_positions(self):
        self.assertEqual(watermark_position("top-left", 30), ("30", "30"))
        self.assertEqual(watermark_position("bottom-right", 20, text=True), ("W-tw-20", "H-th-20"))
        self.assertEqual(watermark_position("center", 0), ("(W-w)/2", "(H-h)/2"))
        self.assertEqual(watermark_position("nowhere", 10), ("W-w-10", "H-h-10"))

    def test_text_watermark_requires_text(self):
        with self.assertRaises(ValueError):
            build_watermark("in.mp4", WatermarkSpec(type="text"), "out.mp4")

    def test_thumbnail_path(self):
        self.assertEqual(thumbnail_path_for("/v/abc.mp4"), "/v/abc_thumb.jpg")


class TestVideoCompositor(unittest.TestCase):
    def setUp(self):
        self.tmpdir = TemporaryDirectory()
        root = self.tmpdir.name
        self.output_dir = os.path.join(root, "videos")
        self.music_dir = os.path.join(root, "audio")
        self.scratch_root = os.path.join(root, "scratch")
        os.makedirs(self.music_dir)
        os.makedirs(self.scratch_root)
        with open(os.path.join(self.music_dir, "upbeat.mp3"), "wb") as f:
            f.write(b"music")
        self.progress = []

    def tearDown(self):
        self.tmpdir.cleanup()

    def _compositor(self, encoder):
        return VideoCompositor(
            fetcher=FakeFetcher(), voice=FakeVoice(9.0), encoder=encoder,
            output_dir=self.output_dir, music_dir=self.music_dir, scratch_root=self.scratch_root,
        )

    def _request(self, **overrides):
        values = dict(
            product_name="Wireless Earbuds",
            image_urls=["https://x/1.jpg", "https://x/2.jpg", "https://x/3.jpg"],
            hooks=["hook one", "hook two", "hook three"],
            ending="buy now",
            background_music="upbeat",
            show_text_overlay=True,
        )
        values.update(overrides)
        return VideoCompositionRequest(**values)

    def _record(self, percent, step):
        self.progress.append((percent, step))

    def test_slideshow_with_music_and_overlay(self):
        encoder = FakeEncoder()
        result = self._compositor(encoder).compose_video(self._request(), self._record)

        self.assertEqual(encoder.labels, ["music mix", "base render", "subtitle burn", "thumbnail"])
        self.assertEqual(result.duration, 9.0)
        self.assertTrue(os.path.exists(result.video_path))
        self.assertEqual(os.path.dirname(result.video_path), self.output_dir)
        self.assertTrue(result.audio_path.endswith(".m4a"))
        self.assertEqual(result.thumbnail_path, thumbnail_path_for(result.video_path))

        percents = [p for p, _ in self.progress]
        self.assertEqual(percents, sorted(percents))
        self.assertEqual(percents[-1], 100)
        self.assertIn(45, percents)
        self.assertEqual(os.listdir(self.scratch_root), [])

    def test_overlay_failure_is_not_fatal(self):
        encoder = FakeEncoder(fail_labels={"subtitle burn"})
        result = self._compositor(encoder).compose_video(self._request(), self._record)

        self.assertIn("subtitle burn", encoder.labels)
        self.assertTrue(os.path.exists(result.video_path))
        self.assertEqual(self.progress[-1][0], 100)

    def test_missing_music_track_uses_voice_only(self):
        encoder = FakeEncoder()
        result = self._compositor(encoder).compose_video(self._request(background_music="chill"))
        self.assertNotIn("music mix", encoder.labels)
        self.assertTrue(result.audio_path.endswith(".mp3"))

    def test_base_render_failure_is_fatal_and_cleans_up(self):
        encoder = FakeEncoder(fail_labels={"base render"})
        with self.assertRaises(PipelineError):
            self._compositor(encoder).compose_video(self._request(), self._record)
        self.assertEqual(os.listdir(self.scratch_root), [])
        self.assertEqual(self.progress[-1][0], 98)

    def test_requires_images_and_script(self):
        compositor = self._compositor(FakeEncoder())
        with self.assertRaises(PipelineError):
            compositor.compose_video(self._request(image_urls=[]))
        with self.assertRaises(PipelineError):
            compositor.compose_video(self._request(hooks=[], ending=""))

    def test_watermark_step(self):
        encoder = FakeEncoder()
        request = self._request(show_text_overlay=False, watermark=WatermarkSpec(type="text", text="@shop_th"))
        self._compositor(encoder).compose_video(request)
        self.assertEqual(encoder.labels, ["music mix", "base render", "watermark", "thumbnail"])


class StubImageGenerator:
    def __init__(self, urls):
        self.urls = urls
        self.calls = []

    def generate_scene_images(self, product_name, scenes, style=None):
        self.calls.append((product_name, list(scenes), style))
        return self.urls


class StubTextToVideo:
    def __init__(self):
        self.prompts = []

    def generate(self, product_name, segments, output_path, style=None, on_poll=None):
        self.prompts.append((product_name, list(segments), style))
        if on_poll:
            on_poll(1, 2)
            on_poll(2, 2)
        with open(output_path, "wb") as f:
            f.write(b"veo")
        return output_path


class TestAlternateBackends(unittest.TestCase):
    setUp = TestVideoCompositor.setUp
    tearDown = TestVideoCompositor.tearDown
    _request = TestVideoCompositor._request
    _record = TestVideoCompositor._record

    def _compositor(self, encoder, image_generator=None, text_to_video=None):
        return VideoCompositor(
            fetcher=FakeFetcher(), voice=FakeVoice(9.0), encoder=encoder,
            output_dir=self.output_dir, music_dir=self.music_dir, scratch_root=self.scratch_root,
            image_generator=image_generator, text_to_video=text_to_video,
        )

    def test_ai_slideshow_renders_generated_images(self):
        generator = StubImageGenerator(["https://ai/1.png", "https://ai/2.png"])
        compositor = self._compositor(FakeEncoder(), image_generator=generator)
        result = compositor.compose_ai_slideshow(self._request(image_urls=[]), style="lifestyle", progress=self._record)

        self.assertEqual(generator.calls[0][2], "lifestyle")
        self.assertEqual(generator.calls[0][1], ["hook one", "hook two", "hook three", "buy now"])
        self.assertEqual(compositor.fetcher.urls, ["https://ai/1.png", "https://ai/2.png"])
        self.assertTrue(os.path.exists(result.video_path))
        percents = [p for p, _ in self.progress]
        self.assertEqual(percents, sorted(percents))

    def test_ai_slideshow_fails_without_images(self):
        compositor = self._compositor(FakeEncoder(), image_generator=StubImageGenerator([]))
        with self.assertRaises(PipelineError):
            compositor.compose_ai_slideshow(self._request())

    def test_backends_need_configuration(self):
        compositor = self._compositor(FakeEncoder())
        with self.assertRaises(PipelineError):
            compositor.compose_ai_slideshow(self._request())
        with self.assertRaises(PipelineError):
            compositor.compose_text_to_video(self._request())

    def test_text_to_video(self):
        encoder = FakeEncoder(duration=8.0)
        t2v = StubTextToVideo()
        result = self._compositor(encoder, text_to_video=t2v).compose_text_to_video(
            self._request(), style="minimal", progress=self._record)

        self.assertEqual(t2v.prompts[0][0], "Wireless Earbuds")
        self.assertEqual(t2v.prompts[0][2], "minimal")
        self.assertEqual(result.duration, 8.0)
        self.assertEqual(encoder.labels, ["thumbnail"])
        self.assertEqual(result.thumbnail_path, thumbnail_path_for(result.video_path))
        self.assertEqual(self.progress[-1][0], 100)


if __name__ == "__main__":
    unittest.main()
