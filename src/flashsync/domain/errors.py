"""Exception hierarchy shared by every layer."""


class FlashsyncError(Exception):
    """Base class for all flashsync errors."""


class InvalidQualityError(FlashsyncError, ValueError):
    """A review quality outside 0..5 (or not an int) reached the scheduler."""


class InvalidReviewStateError(FlashsyncError, ValueError):
    """A ReviewState was built with out-of-range scheduling values."""


class InvalidReviewOutcomeError(FlashsyncError, ValueError):
    """A raw review outcome could not be graded."""


class StorageError(FlashsyncError):
    """Local persistence could not read or write its storage."""


class QueueStoreError(StorageError):
    """The durable action queue could not read or write its storage."""


class RemoteApplyError(FlashsyncError):
    """The remote store rejected or never received a mutation."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class PoisonActionError(FlashsyncError):
    """A queued action's stored kind or payload does not decode."""

    def __init__(self, action_id: int, message: str):
        super().__init__(f"action {action_id}: {message}")
        self.action_id = action_id
