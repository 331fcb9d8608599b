"""Error taxonomy shared by handlers and the worker runtime.

Handlers signal failure by raising. The worker runtime only distinguishes
``PermanentJobError`` (fail now, never retry) from everything else (apply
the job's retry policy).
"""

from __future__ import annotations


class VidforgeError(Exception):
    """Base class for all pipeline errors."""


# ---------------------------------------------------------------------------
# Permanent: bad input, retrying cannot help
# ---------------------------------------------------------------------------

class PermanentJobError(VidforgeError):
    """Job can never succeed; the runtime marks it failed immediately."""


class RecordNotFound(PermanentJobError):
    def __init__(self, kind: str, record_id: str):
        super().__init__(f"{kind} not found: {record_id}")
        self.kind = kind
        self.record_id = record_id


class OwnershipError(PermanentJobError):
    """Episode → series → brand → user chain could not be resolved."""


class InvalidCronExpression(PermanentJobError):
    pass


class UnsupportedPlatform(PermanentJobError):
    pass


class AccountNotConnected(PermanentJobError):
    """No platform credentials for the episode owner."""


# ---------------------------------------------------------------------------
# Transient: infrastructure hiccups, retried under the job's policy
# ---------------------------------------------------------------------------

class TransientJobError(VidforgeError):
    """Retryable failure (network, transcoder, storage)."""


class DownloadError(TransientJobError):
    pass


class StorageError(TransientJobError):
    pass


class TranscodeError(TransientJobError):
    def __init__(self, message: str, returncode: int | None = None, log_tail: str = ""):
        super().__init__(message)
        self.returncode = returncode
        self.log_tail = log_tail


class RenderNotReady(TransientJobError):
    """No completed render with an output URL exists yet."""


class PublishError(TransientJobError):
    pass


class RateLimitExceeded(TransientJobError):
    def __init__(self, platform: str, count: int, ceiling: int):
        super().__init__(
            f"Rate limit exceeded: {count}/{ceiling} {platform} posts in the current window"
        )
        self.platform = platform
        self.count = count
        self.ceiling = ceiling


def is_permanent(exc: BaseException) -> bool:
    return isinstance(exc, PermanentJobError)
