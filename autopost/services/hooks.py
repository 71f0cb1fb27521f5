from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field

from groq import Groq

from autopost.core.errors import HookGenerationError
from autopost.core.settings import settings
from autopost.services.prompts import format_hooks_prompt

logger = logging.getLogger(__name__)

_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")


@dataclass
class GeneratedHooks:
    hook1: str = ""
    hook2: str = ""
    hook3: str = ""
    ending: str = ""
    caption: str = ""
    hashtags: list[str] = field(default_factory=list)


def parse_hooks_response(text: str) -> GeneratedHooks:
    """Pull the first JSON object out of an LLM reply and normalise it."""
    match = _JSON_OBJECT.search(text or "")
    if not match:
        raise HookGenerationError("No JSON found in hook generation response")
    try:
        data = json.loads(match.group(0))
    except json.JSONDecodeError as e:
        raise HookGenerationError(f"Hook generation returned invalid JSON: {e}", cause=e) from e

    hashtags = data.get("hashtags") or []
    if isinstance(hashtags, str):
        hashtags = hashtags.split()
    hashtags = [h if h.startswith("#") else f"#{h}" for h in (str(t).strip() for t in hashtags) if h]

    hooks = GeneratedHooks(
        hook1=str(data.get("hook1") or "").strip(),
        hook2=str(data.get("hook2") or "").strip(),
        hook3=str(data.get("hook3") or "").strip(),
        ending=str(data.get("ending") or "").strip(),
        caption=str(data.get("caption") or "").strip(),
        hashtags=hashtags,
    )
    if not hooks.hook1:
        raise HookGenerationError("Hook generation response has no hook1")
    return hooks


class HookGenerator:
    def __init__(self, client: Groq | None = None, model: str | None = None, language: str = "Thai"):
        self.client = client or Groq(api_key=settings.groq_api_key)
        self.model = model or settings.groq_model
        self.language = language

    def generate(self, product_name: str, description: str | None = None,
                 category: str | None = None) -> GeneratedHooks:
        """
        Ask Groq for three hooks, an ending CTA, a caption and hashtags.
        """
        system, user = format_hooks_prompt(product_name, description, category, self.language)

        logger.info(f"[hooks] Generating hooks for: {product_name}")
        try:
            completion = self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": system},
                    {"role": "user", "content": user},
                ],
                temperature=0.8,
                stream=False,
                response_format={"type": "json_object"},
            )
        except Exception as e:
            raise HookGenerationError(f"Hook generation request failed: {e}", cause=e) from e

        response_text = completion.choices[0].message.content
        logger.info(f"[hooks] Groq response: {(response_text or '')[:100]}...")
        return parse_hooks_response(response_text)
