"""Exception types raised by the document graph.

Precondition errors are caller defects and abort before any write.
Not-found errors carry the offending id so callers can report it.
"""


class FolioError(Exception):
    """Base class for all folio errors."""


class PreconditionError(FolioError, ValueError):
    """A caller passed arguments that violate an operation's contract."""

    def __init__(self, operation: str, message: str) -> None:
        self.operation = operation
        super().__init__(f"{operation}: {message}")


class NotFoundError(FolioError, LookupError):
    """An operation targeted an entity that does not exist."""

    entity = "entity"

    def __init__(self, entity_id: int, operation: str) -> None:
        self.entity_id = entity_id
        self.operation = operation
        super().__init__(f"{operation}: {self.entity} {entity_id} not found")


class DocumentNotFoundError(NotFoundError):
    entity = "document"

    @property
    def document_id(self) -> int:
        return self.entity_id


class PageNotFoundError(NotFoundError):
    entity = "page"


class FileNotFoundInStoreError(NotFoundError):
    entity = "file"


class CodecError(FolioError):
    """A PDF split/rotate/merge primitive failed."""
