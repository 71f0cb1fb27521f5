"""
Encoder - the single seam to the ffmpeg/ffprobe binaries.
Filter graphs are built with ffmpeg-python and handed over as an EncodeRequest;
nothing else in the package shells out to ffmpeg.
"""
import logging
import os
import subprocess
from dataclasses import dataclass, field
from typing import Any, Callable

import ffmpeg

from autopost.core.errors import EncodeError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 300.0


@dataclass
class EncodeRequest:
    stream: Any  # ffmpeg-python output node
    output_path: str
    label: str = "encode"
    timeout: float = DEFAULT_TIMEOUT


@dataclass
class EncodeResult:
    output_path: str
    args: list[str] = field(default_factory=list)


class Encoder:
    def __init__(self, ffmpeg_cmd: str = "ffmpeg", ffprobe_cmd: str = "ffprobe",
                 runner: Callable[..., subprocess.CompletedProcess] = subprocess.run):
        self.ffmpeg_cmd = ffmpeg_cmd
        self.ffprobe_cmd = ffprobe_cmd
        self.runner = runner

    def compile(self, request: EncodeRequest) -> list[str]:
        return ffmpeg.compile(request.stream, cmd=self.ffmpeg_cmd, overwrite_output=True)

    def run(self, request: EncodeRequest) -> EncodeResult:
        args = self.compile(request)
        logger.debug(f"[encoder] {request.label}: {' '.join(args)}")
        try:
            proc = self.runner(args, capture_output=True, timeout=request.timeout)
        except subprocess.TimeoutExpired as e:
            raise EncodeError(f"{request.label} timed out after {request.timeout:.0f}s", cause=e) from e
        except OSError as e:
            raise EncodeError(f"{request.label} could not start ffmpeg: {e}", cause=e) from e

        if proc.returncode != 0:
            stderr = (proc.stderr or b"").decode("utf-8", errors="replace")
            tail = stderr.strip().splitlines()[-1] if stderr.strip() else "no output"
            raise EncodeError(f"{request.label} failed (exit {proc.returncode}): {tail}", stderr=stderr)

        if not os.path.exists(request.output_path):
            raise EncodeError(f"{request.label} produced no output at {request.output_path}")

        return EncodeResult(output_path=request.output_path, args=args)

    def probe_duration(self, path: str, timeout: float = 30.0) -> float:
        """Container duration in seconds, as reported by ffprobe."""
        try:
            info = ffmpeg.probe(path, cmd=self.ffprobe_cmd, timeout=timeout)
        except ffmpeg.Error as e:
            stderr = (e.stderr or b"").decode("utf-8", errors="replace")
            raise EncodeError(f"ffprobe failed for {path}", stderr=stderr, cause=e) from e
        except (subprocess.TimeoutExpired, OSError) as e:
            raise EncodeError(f"ffprobe failed for {path}: {e}", cause=e) from e

        try:
            return float(info["format"]["duration"])
        except (KeyError, TypeError, ValueError) as e:
            raise EncodeError(f"ffprobe reported no duration for {path}", cause=e) from e
