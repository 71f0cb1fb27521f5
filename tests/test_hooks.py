"""Tests for hook generation and LLM reply parsing."""

import unittest
from types import SimpleNamespace

from autopost.core.errors import HookGenerationError
from autopost.services.hooks import HookGenerator, parse_hooks_response
from autopost.services.prompts import format_hooks_prompt


class FakeCompletions:
    def __init__(self, content=None, error=None):
        self.content = content
        self.error = error
        self.kwargs = None

    def create(self, **kwargs):
        self.kwargs = kwargs
        if self.error:
            raise self.error
        message = SimpleNamespace(content=self.content)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def fake_groq(completions):
    return SimpleNamespace(chat=SimpleNamespace(completions=completions))


class TestParseHooks(unittest.TestCase):
    def test_json_inside_prose(self):
        text = 'Sure! Here you go:\n{"hook1": "Stop scrolling", "hook2": "Only 99฿", "hook3": "Fast ship",' \
               ' "ending": "Tap the cart", "caption": "Must have", "hashtags": ["tiktokshop", "#deal"]}\nEnjoy'
        hooks = parse_hooks_response(text)
        self.assertEqual(hooks.hook1, "Stop scrolling")
        self.assertEqual(hooks.ending, "Tap the cart")
        self.assertEqual(hooks.hashtags, ["#tiktokshop", "#deal"])

    def test_hashtags_as_string(self):
        hooks = parse_hooks_response('{"hook1": "a", "hashtags": "#one two"}')
        self.assertEqual(hooks.hashtags, ["#one", "#two"])

    def test_rejects_missing_json_or_hook(self):
        for text in ("no json here", "{not json}", '{"hook2": "b"}', None):
            with self.assertRaises(HookGenerationError):
                parse_hooks_response(text)


class TestHookGenerator(unittest.TestCase):
    def test_generate_uses_json_mode(self):
        completions = FakeCompletions('{"hook1": "h1", "hook2": "h2", "hook3": "h3", "ending": "e"}')
        hooks = HookGenerator(client=fake_groq(completions), model="test-model").generate("Desk Lamp")

        self.assertEqual(hooks.hook3, "h3")
        self.assertEqual(completions.kwargs["model"], "test-model")
        self.assertEqual(completions.kwargs["response_format"], {"type": "json_object"})
        self.assertIn("Desk Lamp", completions.kwargs["messages"][1]["content"])

    def test_request_failure_is_wrapped(self):
        completions = FakeCompletions(error=RuntimeError("429 rate limited"))
        with self.assertRaises(HookGenerationError):
            HookGenerator(client=fake_groq(completions)).generate("Desk Lamp")

    def test_prompt_mentions_language(self):
        system, user = format_hooks_prompt("Desk Lamp", language="Thai")
        self.assertIn("Thai", system + user)


if __name__ == "__main__":
    unittest.main()
