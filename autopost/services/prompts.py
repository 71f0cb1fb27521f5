"""
Prompt templates for the generative collaborators:
Groq (hooks/caption), DALL-E (scene images) and Veo (text-to-video).
"""
from __future__ import annotations

import json

from autopost.core.enums import ImageStyle

# =============================================================================
# HOOKS PROMPT (Groq)
# =============================================================================

HOOKS_SYSTEM = """You are a TikTok affiliate copywriter who writes short, punchy sales scripts.

STRICT RULES:
- Output MUST be valid JSON only. No markdown, no explanation, no extra text.
- Write in {language}, natural spoken style, as if talking to a friend.
- Every line is read aloud by a voiceover, so no emojis and no hashtags inside hooks."""

HOOKS_USER_TEMPLATE = """Write a TikTok video script that makes viewers want to buy this product.

PRODUCT: {product_name}
{details}
OUTPUT FORMAT (STRICT, NO EXTRA KEYS):
{{
  "hook1": string,
  "hook2": string,
  "hook3": string,
  "ending": string,
  "caption": string,
  "hashtags": [string]
}}

INSTRUCTIONS:
- hook1 (opening): stops the scroll, 10-15 words.
- hook2 (middle): the key benefit or feature, 15-20 words.
- hook3 (closing): urgency or FOMO, 10-15 words.
- ending: call to action to tap the basket and buy, 5-10 words.
- caption: short post description, 20-30 words.
- hashtags: 5-8 relevant hashtags, each starting with #."""


def format_hooks_prompt(product_name: str, description: str | None = None,
                        category: str | None = None, language: str = "Thai") -> tuple[str, str]:
    """Returns (system, user) messages for hook generation."""
    details = ""
    if description:
        details += f"DETAILS: {description[:1000]}\n"
    if category:
        details += f"CATEGORY: {category}\n"
    system = HOOKS_SYSTEM.format(language=language)
    user = HOOKS_USER_TEMPLATE.format(product_name=product_name, details=details)
    return system, user


# =============================================================================
# SCENE IMAGE PROMPTS (DALL-E)
# =============================================================================

IMAGE_STYLE_PROMPTS = {
    ImageStyle.PRODUCT_SHOWCASE.value: (
        "Professional product photography: a friendly presenter holding and showcasing {product} towards "
        "the camera. Clean studio background with soft gradient, presenter making eye contact, product "
        "clearly visible. High-end commercial photography, studio lighting."
    ),
    ImageStyle.LIFESTYLE.value: (
        "Lifestyle photography: a young presenter naturally using {product} in a modern, bright living "
        "space, looking happy with it. Warm natural lighting, aspirational mood, presenter and product "
        "both in focus."
    ),
    ImageStyle.PROMOTIONAL.value: (
        "Promotional image: an energetic presenter enthusiastically holding up {product}. Bright, vibrant "
        "colors, dynamic pose, big genuine smile, modern clean background with subtle color accents."
    ),
    ImageStyle.MINIMAL.value: (
        "Elegant product presentation: a model holding {product} with both hands against a minimalist "
        "white background. Soft studio lighting, clean composition with lots of negative space, luxury "
        "brand aesthetic."
    ),
}

# Scene order when the caller does not pin a style
DEFAULT_SCENE_STYLES = [
    ImageStyle.PRODUCT_SHOWCASE.value,
    ImageStyle.LIFESTYLE.value,
    ImageStyle.PROMOTIONAL.value,
    ImageStyle.MINIMAL.value,
]


def format_image_prompt(product_name: str, scene: str, style: str) -> str:
    base = IMAGE_STYLE_PROMPTS.get(style, IMAGE_STYLE_PROMPTS[ImageStyle.PRODUCT_SHOWCASE.value])
    context = f"Context: {scene[:100]}. " if scene else ""
    return (
        f"{base.format(product=product_name)} {context}"
        "Vertical 9:16 aspect ratio suitable for TikTok. Photorealistic. No text, watermarks, or logos."
    )


# =============================================================================
# TEXT-TO-VIDEO PROMPT (Veo)
# =============================================================================

VIDEO_PROMPT_TEMPLATE = """Create a {orientation} video advertisement for {product}.

Scene description: {narrative}

Style requirements:
- High-quality, cinematic {style} product video
- Smooth camera movements with a subtle Ken Burns effect
- Professional lighting with soft shadows
- Modern, clean aesthetic suitable for social media
- Focus on the product with elegant transitions
- Upbeat, engaging mood

Technical: sharp focus, professional color grading, 4K quality appearance."""


def format_video_prompt(product_name: str, segments: list[str], aspect_ratio: str = "9:16",
                        style: str = ImageStyle.PRODUCT_SHOWCASE.value) -> str:
    orientation = "vertical portrait" if aspect_ratio == "9:16" else "horizontal landscape"
    return VIDEO_PROMPT_TEMPLATE.format(
        orientation=orientation,
        product=json.dumps(product_name, ensure_ascii=False),
        narrative=" ".join(s for s in segments if s),
        style=style.replace("-", " "),
    )
