from typing import Optional


class HealthBotError(Exception):
    """Base class for failures raised inside the bot."""


class ValidationFailure(HealthBotError):
    """User input exceeds a configured limit. Always user-correctable."""

    def __init__(self, kind: str, limit: int):
        super().__init__(f"{kind} exceeds limit {limit}")
        self.kind = kind
        self.limit = limit


class StoreUnavailable(HealthBotError):
    """The relational store is unreachable or rejected the operation."""


class StorageUnavailable(HealthBotError):
    """The storage bucket could not be verified or created."""


class UploadFailed(HealthBotError):
    CONTAINER_MISSING = "container_missing"
    PERMISSION_DENIED = "permission_denied"
    PAYLOAD_TOO_LARGE = "payload_too_large"
    UNKNOWN = "unknown"

    def __init__(self, reason: str, detail: Optional[str] = None):
        super().__init__(f"Upload failed ({reason}): {detail}" if detail else f"Upload failed ({reason})")
        self.reason = reason
        self.detail = detail


class AnalysisTimeout(HealthBotError):
    """The analysis provider did not answer within the configured bound."""


class TransportError(HealthBotError):
    def __init__(self, description: str, error_code: Optional[int] = None):
        super().__init__(f"Telegram API error {error_code}: {description}" if error_code else description)
        self.description = description
        self.error_code = error_code
