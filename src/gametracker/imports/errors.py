"""Errors raised by the completion import pipeline."""

from typing import Optional


class ImportPipelineError(Exception):
    """Base class for import pipeline errors."""

    pass


class ParseError(ImportPipelineError):
    """The export file is malformed or holds no usable rows."""

    pass


class NoMatchError(ImportPipelineError):
    """Neither the catalog nor IGDB has a candidate for a title."""

    def __init__(self, title: str):
        self.title = title
        super().__init__(f'No catalog or IGDB match found for "{title}"')


class AmbiguousMatchError(ImportPipelineError):
    """More than one candidate matched; the user has to choose."""

    def __init__(self, title: str, candidates: list):
        self.title = title
        self.candidates = candidates
        super().__init__(f'{len(candidates)} candidates found for "{title}"')


class ExternalProviderError(ImportPipelineError):
    """IGDB could not be reached or refused the request."""

    pass


class ConflictError(ImportPipelineError):
    """The user already has an active or paused import."""

    def __init__(self, user_id: str, existing_import_id: Optional[int] = None):
        self.user_id = user_id
        self.existing_import_id = existing_import_id
        if existing_import_id is not None:
            message = (
                f"Import #{existing_import_id} is already open for this user. "
                "Resume or cancel it first."
            )
        else:
            message = "An import is already open for this user. Resume or cancel it first."
        super().__init__(message)


class NoActiveSessionError(ImportPipelineError):
    """The user has no active or paused import."""

    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__("No active import session.")


class InvalidTransitionError(ImportPipelineError):
    """A session status change outside the allowed transitions."""

    def __init__(self, import_id: int, current: str, requested: str):
        self.import_id = import_id
        self.current = current
        self.requested = requested
        super().__init__(f"Import #{import_id} cannot move from {current} to {requested}")
