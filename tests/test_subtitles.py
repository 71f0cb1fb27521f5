"""Tests for subtitle timing and ASS output."""

import os
import unittest
from tempfile import TemporaryDirectory

from autopost.services.subtitles import (
    build_subtitle_cues, escape_ass_text, format_ass_time, render_ass, write_subtitles,
)


class TestSubtitleCues(unittest.TestCase):
    def test_equal_slices_in_order(self):
        cues = build_subtitle_cues(["hook one", "hook two", "buy now"], 9.0)
        self.assertEqual([c.text for c in cues], ["hook one", "hook two", "buy now"])
        self.assertEqual([c.index for c in cues], [0, 1, 2])
        for cue, start in zip(cues, (0.0, 3.0, 6.0)):
            self.assertAlmostEqual(cue.start, start)
            self.assertAlmostEqual(cue.end, start + 2.9)

    def test_blank_segments_are_skipped(self):
        cues = build_subtitle_cues(["first", "  ", "", "second"], 4.0)
        self.assertEqual(len(cues), 2)
        self.assertAlmostEqual(cues[1].start, 2.0)

    def test_nothing_to_show(self):
        self.assertEqual(build_subtitle_cues([], 10.0), [])
        self.assertEqual(build_subtitle_cues(["text"], 0), [])


class TestAssRendering(unittest.TestCase):
    def test_time_format(self):
        self.assertEqual(format_ass_time(0), "0:00:00.00")
        self.assertEqual(format_ass_time(2.9), "0:00:02.90")
        self.assertEqual(format_ass_time(3723.456), "1:02:03.46")

    def test_escape_breaks_and_override_braces(self):
        self.assertEqual(escape_ass_text("line1\nline2"), "line1\\Nline2")
        self.assertEqual(escape_ass_text("{\\b1}sale"), "(\\b1)sale")

    def test_document_has_portrait_canvas_and_dialogue(self):
        cues = build_subtitle_cues(["a", "b"], 4.0)
        doc = render_ass(cues, "neon")
        self.assertIn("PlayResX: 1080", doc)
        self.assertIn("PlayResY: 1920", doc)
        self.assertIn("&H0000FF00", doc)  # neon green primary colour
        dialogue = [l for l in doc.splitlines() if l.startswith("Dialogue:")]
        self.assertEqual(len(dialogue), 2)
        self.assertTrue(dialogue[1].startswith("Dialogue: 0,0:00:02.00,0:00:03.90,Default"))

    def test_unknown_style_falls_back_to_bold(self):
        self.assertIn("Arial,56", render_ass([], "comic"))

    def test_write_subtitles(self):
        with TemporaryDirectory() as tmpdir:
            path = os.path.join(tmpdir, "subs.ass")
            self.assertEqual(write_subtitles(["hello"], 3.0, "bold", path), path)
            with open(path, encoding="utf-8") as f:
                self.assertIn("hello", f.read())
            self.assertIsNone(write_subtitles([], 3.0, "bold", os.path.join(tmpdir, "none.ass")))


if __name__ == "__main__":
    unittest.main()
