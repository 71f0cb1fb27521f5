import asyncio
import logging
import subprocess
from typing import Callable, Optional

import edge_tts

from autopost.core.errors import TTSError, EncodeError
from autopost.services.encoder import Encoder

logger = logging.getLogger(__name__)

MAX_TTS_CHARS = 5000
TTS_TIMEOUT = 120.0


def build_script(segments: list[str]) -> str:
    """Join the spoken segments with single spaces, safe for one argv entry."""
    text = " ".join(s.strip() for s in segments if s and s.strip())
    text = " ".join(text.split())
    return text[:MAX_TTS_CHARS]


class VoiceSynthesizer:
    def __init__(
        self,
        encoder: Encoder,
        voice: str = "th-TH-PremwadeeNeural",
        tts_bin: str = "edge-tts",
        communicate: Callable[..., edge_tts.Communicate] = edge_tts.Communicate,
        runner: Callable[..., subprocess.CompletedProcess] = subprocess.run,
        timeout: float = TTS_TIMEOUT,
    ):
        self.encoder = encoder
        self.voice = voice
        self.tts_bin = tts_bin
        self.communicate = communicate
        self.runner = runner
        self.timeout = timeout

    async def _save(self, text: str, output_path: str) -> None:
        communicate = self.communicate(text, voice=self.voice)
        await asyncio.wait_for(communicate.save(output_path), timeout=self.timeout)

    def _synthesize_in_process(self, text: str, output_path: str) -> Optional[str]:
        """edge_tts.Communicate in this process; returns an error description or None on success."""
        try:
            asyncio.run(self._save(text, output_path))
        except asyncio.TimeoutError:
            return f"timed out after {self.timeout:.0f}s"
        except Exception as e:
            return f"{e.__class__.__name__}: {e}"
        return None

    def _synthesize_cli(self, text: str, output_path: str) -> Optional[str]:
        cmd = [self.tts_bin, "--voice", self.voice, "--text", text, "--write-media", output_path]
        try:
            proc = self.runner(cmd, capture_output=True, timeout=self.timeout)
        except subprocess.TimeoutExpired:
            return f"timed out after {self.timeout:.0f}s"
        except OSError as e:
            return str(e)
        if proc.returncode != 0:
            stderr = (proc.stderr or b"").decode("utf-8", errors="replace").strip()
            return stderr.splitlines()[-1] if stderr else f"exit code {proc.returncode}"
        return None

    def synthesize_voice(self, segments: list[str], output_path: str) -> tuple[str, float]:
        """
        Render the narration to output_path.
        Returns (audio_path, measured duration in seconds).
        """
        text = build_script(segments)
        if not text:
            raise TTSError("No text to synthesize")

        logger.info(f"[tts] Synthesizing {len(text)} chars with {self.voice}")
        error = self._synthesize_in_process(text, output_path)
        if error is not None:
            logger.warning(f"[tts] edge_tts failed ({error}), retrying with {self.tts_bin}")
            cli_error = self._synthesize_cli(text, output_path)
            if cli_error is not None:
                raise TTSError(f"TTS generation failed: {error}; {cli_error}")

        try:
            duration = self.encoder.probe_duration(output_path)
        except EncodeError as e:
            raise TTSError(f"Could not measure TTS audio duration: {e}", cause=e) from e

        if duration <= 0:
            raise TTSError(f"TTS produced empty audio ({duration}s)")

        logger.info(f"[tts] Audio duration {duration:.2f}s")
        return output_path, duration
