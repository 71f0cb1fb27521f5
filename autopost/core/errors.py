"""
Error taxonomy for the pipeline. Every error carries a human-readable
message that is persisted verbatim on the Job when the stage is fatal.
"""
from __future__ import annotations

from typing import Optional


class PipelineError(Exception):
    """Generic stage failure; wraps the original cause when there is one."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause


class FetchError(PipelineError):
    pass


class TTSError(PipelineError):
    pass


class EncodeError(PipelineError):
    def __init__(self, message: str, stderr: str = "", cause: Optional[BaseException] = None):
        super().__init__(message, cause)
        self.stderr = stderr


class StageTimeoutError(PipelineError, TimeoutError):
    pass


class AuthError(PipelineError):
    pass


class RateLimitError(PipelineError):
    def __init__(self, message: str, retry_after: Optional[float] = None):
        super().__init__(message)
        self.retry_after = retry_after


class TikTokAPIError(PipelineError):
    def __init__(self, message: str, status_code: Optional[int] = None, code: Optional[str] = None,
                 cause: Optional[BaseException] = None):
        super().__init__(message, cause)
        self.status_code = status_code
        self.code = code


class HookGenerationError(PipelineError):
    pass
