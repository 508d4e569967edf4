"""Schemas for uploaded source files and the pages derived from them."""

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, Field


class ProcessingStatus(StrEnum):
    """Lifecycle of an uploaded file."""

    UNPROCESSED = "unprocessed"
    PROCESSING = "processing"
    PROCESSED = "processed"
    ERROR = "error"


class RenderStatus(StrEnum):
    """Whether a page image has been rendered (rendering itself lives elsewhere)."""

    PENDING = "pending"
    RENDERED = "rendered"
    FAILED = "failed"


class StoredFile(BaseModel):
    """An uploaded file without its binary payload."""

    id: int
    content_type: str
    origin: str = Field(description="Provenance label, e.g. web, mail, scanner")
    name: str | None = None
    status: ProcessingStatus
    created: datetime


class Page(BaseModel):
    """One page of a source file."""

    id: int
    file: int
    number: int = Field(ge=0, description="0-based position within the file")
    rotation: int = 0
    render_status: RenderStatus = RenderStatus.PENDING


class InboxPage(BaseModel):
    """A page waiting in the inbox to be filed into a document."""

    id: int
    file: int
    number: int
    render_status: RenderStatus
