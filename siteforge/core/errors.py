"""Exception hierarchy shared by the engine."""

from __future__ import annotations

from typing import Optional


class SiteForgeError(Exception):
    """Base class for every error raised by siteforge."""


class ConfigurationError(SiteForgeError):
    pass


# --------------------------------------------------------------- remote --


class GenerationError(SiteForgeError):
    """A call to the content-generation service failed."""

    retryable = True


class RateLimited(GenerationError):
    def __init__(self, message: str = "rate limited", retry_after: Optional[float] = None) -> None:
        super().__init__(message)
        self.retry_after = retry_after


class ServiceOverloaded(GenerationError):
    pass


class ClientRejected(GenerationError):
    retryable = False


class EmptyResponse(GenerationError):
    pass


class ParseFailure(GenerationError):
    """The service answered but no usable structured output could be recovered."""


# ------------------------------------------------------------ file tree --


class FileTreeError(SiteForgeError):
    def __init__(self, message: str, path: Optional[str] = None) -> None:
        super().__init__(message)
        self.path = path


class InvalidPath(FileTreeError):
    pass


class PathNotFound(FileTreeError):
    pass


class PathCollision(FileTreeError):
    pass


class AlreadyExists(PathCollision):
    """A file already lives at the requested path."""


class FolderCollision(PathCollision):
    """A folder already uses the requested name."""


class InvalidMove(FileTreeError):
    pass


class ProtectedPath(FileTreeError):
    pass


# ---------------------------------------------------------------- edits --


class ElementNotFound(SiteForgeError):
    pass


class RevisionNotFound(SiteForgeError):
    pass


class EditInProgress(SiteForgeError):
    def __init__(self, paths: list[str]) -> None:
        super().__init__(f"An edit is already running for: {', '.join(paths)}")
        self.paths = paths
