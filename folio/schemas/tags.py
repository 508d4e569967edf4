"""Schemas for tags and the auto-tagging configuration."""

from pydantic import BaseModel, Field


class Tag(BaseModel):
    """A normalized tag."""

    id: int
    name: str


class TagCount(BaseModel):
    """A tag with the number of documents carrying it."""

    name: str
    count: int = Field(ge=0)


class TaggingConfig(BaseModel):
    """Rules for tagging newly created documents."""

    add_origin: bool = True
    mail_to: bool = False
    mail_from: bool = False
    new_document: list[str] = Field(
        default_factory=list,
        description="Tags added to every new document",
    )


class TaggingContext(BaseModel):
    """Facts about a new document that tagging rules may use."""

    origin: str | None = None
    mail_to: str | None = None
    mail_from: str | None = None
