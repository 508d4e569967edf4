"""Schemas for document search expressions."""

from pydantic import BaseModel, Field


class SearchQuery(BaseModel):
    """A parsed search expression. All conditions must hold."""

    tags: list[str] = Field(default_factory=list, description="Tags the document must have")
    excluded_tags: list[str] = Field(
        default_factory=list, description="Tags the document must not have"
    )
    title_terms: list[str] = Field(
        default_factory=list, description="Case-insensitive title substrings"
    )

    def is_empty(self) -> bool:
        return not (self.tags or self.excluded_tags or self.title_terms)
