"""Schemas for documents composed from pages."""

from datetime import datetime

from pydantic import BaseModel, Field

from folio.schemas.files import RenderStatus


class DocumentPage(BaseModel):
    """A page as seen through a document (ordered by the document's numbering)."""

    id: int
    rotation: int
    render_status: RenderStatus


class SourcePage(BaseModel):
    """Where a document page comes from, for PDF reconstitution."""

    file: int
    number: int
    rotation: int


class Document(BaseModel):
    """A document with its ordered pages and tags."""

    id: int
    title: str = ""
    notes: str | None = None
    created: datetime
    modified: datetime
    pages: list[DocumentPage] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)


class DocumentSummary(BaseModel):
    """One row of a document listing: id, title and a representative page."""

    id: int
    title: str
    page: int = Field(description="Id of the document's first page")
