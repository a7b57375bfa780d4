"""Custom exceptions shared by the STT, LLM and TTS services.

Every error carries the pipeline ``stage`` it came from ("stt", "llm",
"tts", "audio") so the orchestrator can report it without knowing
which vendor produced it.
"""


class ServiceError(Exception):
    """Base exception for provider and pipeline errors."""

    def __init__(self, message: str, *, stage: str = "") -> None:
        super().__init__(message)
        self.stage = stage


class ConfigurationError(ServiceError):
    """Raised when a required option (API key, voice id) is missing.

    Raised before any network call and never retried.
    """

    pass


class InputValidationError(ServiceError):
    """Raised for empty input text or an unsupported audio format."""

    pass


class TransientServiceError(ServiceError):
    """Raised for timeouts, dropped connections and HTTP 408/429/5xx.

    The request executor retries these.
    """

    def __init__(
        self,
        message: str,
        *,
        stage: str = "",
        status_code: int | None = None,
    ) -> None:
        super().__init__(message, stage=stage)
        self.status_code = status_code


class RateLimitError(TransientServiceError):
    """Raised when the vendor answers 429."""

    def __init__(self, message: str, *, stage: str = "", retry_after: float = 60.0) -> None:
        super().__init__(message, stage=stage, status_code=429)
        self.retry_after = retry_after


class VendorRejectionError(ServiceError):
    """Raised when the vendor rejects the request with a 4xx status.

    ``str(error)`` is the vendor's own error message when the body had one.
    """

    def __init__(self, message: str, *, stage: str = "", status_code: int) -> None:
        super().__init__(message, stage=stage)
        self.status_code = status_code


class ResponseParseError(ServiceError):
    """Raised when a response body does not match the expected schema."""

    def __init__(self, message: str, *, stage: str = "", raw: str | None = None) -> None:
        super().__init__(message, stage=stage)
        self.raw = raw


class AudioDecodeError(ResponseParseError):
    """Raised when returned audio cannot be decoded."""

    pass


class CaptureError(ServiceError):
    """Raised when the capture device cannot start or deliver samples."""

    def __init__(self, message: str) -> None:
        super().__init__(message, stage="stt")


class CaptureBusyError(CaptureError):
    """Raised when a capture device is already owned by another session."""

    pass
