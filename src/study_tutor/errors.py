"""Domain-specific exceptions.

Expected empty outcomes (no collection, nothing relevant, turn ceiling) are
never raised; these types cover invalid input and upstream faults so the chat
service and API layer can tell them apart.
"""

from __future__ import annotations


class TutorError(Exception):
    """Base class for all study tutor errors."""


class InvalidChatRequestError(TutorError):
    """The inbound chat request cannot be processed as given."""


class MissingCredentialsError(TutorError):
    """A required API credential is not configured."""

    def __init__(self, names: list[str]) -> None:
        self.names = names
        super().__init__(f"Missing required credentials: {', '.join(names)}")


class ReasoningServiceError(TutorError):
    """The reasoning service failed, timed out, or rejected the request."""


class SemanticIndexError(TutorError):
    """Base class for semantic index failures."""


class CollectionNotFoundError(SemanticIndexError):
    """The caller has no document collection in the index."""

    def __init__(self, collection_id: str) -> None:
        self.collection_id = collection_id
        super().__init__(f"Collection not found: {collection_id}")


class IndexUnavailableError(SemanticIndexError):
    """The semantic index could not be reached or returned an error."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)
