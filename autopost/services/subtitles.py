"""
Subtitle timing and ASS rendering.
Every segment gets an equal share of the measured narration time.
"""
from dataclasses import dataclass

from autopost.core.enums import TextStyle

CUE_GAP_SECONDS = 0.1

# [V4+ Styles] line per preset; fields follow the Format line in render_ass
STYLE_PRESETS = {
    TextStyle.MINIMAL.value: "Style: Default,Arial,48,&H00FFFFFF,&H000000FF,&H00000000,&H80000000,-1,0,0,0,100,100,0,0,1,2,0,2,30,30,30,1",
    TextStyle.BOLD.value: "Style: Default,Arial,56,&H00FFFFFF,&H000000FF,&H00000000,&H80000000,-1,-1,0,0,100,100,0,0,1,3,0,2,30,30,30,1",
    TextStyle.NEON.value: "Style: Default,Arial,52,&H0000FF00,&H000000FF,&H00FFFFFF,&H80000000,-1,0,0,0,100,100,0,0,3,2,0,2,30,30,30,1",
    TextStyle.SIMPLE.value: "Style: Default,Arial,44,&H0000FFFF,&H000000FF,&H00000000,&H80000000,-1,-1,0,0,100,100,0,0,1,2,0,2,30,30,30,1",
}


@dataclass(frozen=True)
class SubtitleCue:
    index: int
    start: float
    end: float
    text: str


def build_subtitle_cues(segments: list[str], duration: float, gap: float = CUE_GAP_SECONDS) -> list[SubtitleCue]:
    """Split duration evenly across the non-empty segments, in order."""
    texts = [s.strip() for s in segments if s and s.strip()]
    if not texts or duration <= 0:
        return []

    slice_ = duration / len(texts)
    cues = []
    for i, text in enumerate(texts):
        start = i * slice_
        end = max(start, start + slice_ - gap)
        cues.append(SubtitleCue(index=i, start=start, end=end, text=text))
    return cues


def format_ass_time(seconds: float) -> str:
    """h:mm:ss.cc"""
    centis = int(round(max(seconds, 0.0) * 100))
    h, rem = divmod(centis, 360000)
    m, rem = divmod(rem, 6000)
    s, cs = divmod(rem, 100)
    return f"{h}:{m:02d}:{s:02d}.{cs:02d}"


def escape_ass_text(text: str) -> str:
    return text.replace("\r\n", "\n").replace("\n", "\\N").replace("{", "(").replace("}", ")")


def render_ass(cues: list[SubtitleCue], style: str = TextStyle.BOLD.value) -> str:
    style_line = STYLE_PRESETS.get(style, STYLE_PRESETS[TextStyle.BOLD.value])
    lines = [
        "[Script Info]",
        "ScriptType: v4.00+",
        "PlayResX: 1080",
        "PlayResY: 1920",
        "WrapStyle: 0",
        "",
        "[V4+ Styles]",
        "Format: Name, Fontname, Fontsize, PrimaryColour, SecondaryColour, OutlineColour, BackColour, "
        "Bold, Italic, Underline, StrikeOut, ScaleX, ScaleY, Spacing, Angle, BorderStyle, Outline, "
        "Shadow, Alignment, MarginL, MarginR, MarginV, Encoding",
        style_line,
        "",
        "[Events]",
        "Format: Layer, Start, End, Style, Name, MarginL, MarginR, MarginV, Effect, Text",
    ]
    for cue in cues:
        lines.append(
            f"Dialogue: 0,{format_ass_time(cue.start)},{format_ass_time(cue.end)},Default,,0,0,0,,"
            f"{escape_ass_text(cue.text)}"
        )
    return "\n".join(lines) + "\n"


def write_subtitles(segments: list[str], duration: float, style: str, path: str) -> str | None:
    """Write an .ass file; None when there is nothing to show."""
    cues = build_subtitle_cues(segments, duration)
    if not cues:
        return None
    with open(path, "w", encoding="utf-8") as f:
        f.write(render_ass(cues, style))
    return path
