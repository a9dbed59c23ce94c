"""
Error types for Media Rating Overlay.

Every error raised by the pipeline derives from OverlayError and carries a
``kind`` string that names the failure in logs. Wrapped causes are kept on
``cause`` and chained through ``__cause__`` so tracebacks show the full chain.
"""

from typing import Optional


class OverlayError(RuntimeError):
    """Base class for pipeline errors."""

    kind = 'overlay-error'

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause


# ============================================================================
# Cancellation
# ============================================================================

class Cancelled(OverlayError):
    """A token was cancelled explicitly (shutdown, signal, task group failure)."""

    kind = 'cancelled'

    def __init__(self, message: str = 'context canceled', cause: Optional[BaseException] = None):
        super().__init__(message, cause)


class DeadlineExceeded(Cancelled):
    """A token's deadline passed."""

    kind = 'deadline-exceeded'

    def __init__(self, message: str = 'context deadline exceeded', cause: Optional[BaseException] = None):
        super().__init__(message, cause)


class CancelledError(OverlayError):
    """Cancellation observed at a checkpoint before ``stage``."""

    def __init__(self, stage: str, cause: BaseException):
        self.stage = stage
        self.kind = f"cancelled-before-{stage}"
        super().__init__(f"cancelled before {stage.replace('-', ' ')}", cause)


# ============================================================================
# Startup
# ============================================================================

class ConfigError(OverlayError):
    kind = 'config-invalid'


class ServiceInitError(OverlayError):
    kind = 'service-init-failed'


# ============================================================================
# Library level
# ============================================================================

class LibraryNotFoundError(OverlayError):
    kind = 'library-not-found'

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"library not found: {name}")


class HandleMissingError(OverlayError):
    kind = 'handle-missing'

    def __init__(self, handle: str):
        self.handle = handle
        super().__init__(f"{handle} service is not set")


class ItemsRetrievalError(OverlayError):
    kind = 'items-retrieval-failed'


class RefreshError(OverlayError):
    kind = 'refresh-failed'


# ============================================================================
# Item level
# ============================================================================

class PostersNotSetError(OverlayError):
    kind = 'posters-not-set'

    def __init__(self):
        super().__init__('poster service not set, call set_posters first')


class SemaphoreAcquireError(OverlayError):
    kind = 'semaphore-acquire-failed'


class ParallelProcessingError(OverlayError):
    kind = 'parallel-processing-failed'


class RatingFetchError(OverlayError):
    kind = 'rating-fetch-failed'


class PosterEnsureError(OverlayError):
    kind = 'poster-ensure-failed'


class PosterLocateError(OverlayError):
    kind = 'poster-locate-failed'


class PosterComposeError(OverlayError):
    kind = 'poster-compose-failed'


class PosterError(OverlayError):
    """A compositor stage failed."""

    kind = 'poster-error'

    def __init__(self, stage: str, cause: Optional[BaseException] = None):
        self.stage = stage
        super().__init__(stage, cause)


class BackupError(PosterError):
    kind = 'backup-failed'

    def __init__(self, cause: BaseException):
        super().__init__('backup_poster', cause)


class FileLocateError(OverlayError):
    kind = 'cannot-locate-file'

    def __init__(self, path: str, library_path: str):
        self.path = path
        self.library_path = library_path
        super().__init__(f"unable to find file {path} under library path {library_path}")


# ============================================================================
# Remote services
# ============================================================================

class HTTPRequestError(OverlayError):
    kind = 'http-failed'

    def __init__(self, message: str, status: int = 0, cause: Optional[BaseException] = None):
        self.status = status
        super().__init__(message, cause)


class NotAuthorizedError(HTTPRequestError):
    kind = 'not-authorized'

    def __init__(self, service: str):
        super().__init__(f"{service}: not authorized", status=401)


class NotFoundError(HTTPRequestError):
    kind = 'not-found'

    def __init__(self, what: str):
        super().__init__(f"not found: {what}", status=404)


def is_cancellation(err: Optional[BaseException]) -> bool:
    """True if ``err`` is, or wraps, a token cancellation."""
    while err is not None:
        if isinstance(err, (Cancelled, CancelledError)):
            return True
        err = err.__cause__
    return False


def is_deadline_error(err: Optional[BaseException]) -> bool:
    """True if a deadline expiry sits anywhere in the ``__cause__`` chain."""
    while err is not None:
        if isinstance(err, DeadlineExceeded):
            return True
        err = err.__cause__
    return False
