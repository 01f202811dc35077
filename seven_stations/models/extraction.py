"""Models for loading submitted documents."""

from datetime import datetime

from pydantic import BaseModel, Field


class PageContent(BaseModel):
    """Content of a single page (one page for plain text files)."""

    page_number: int = Field(..., ge=1, description="1-indexed page number")
    text: str = Field(..., description="Extracted text content")
    char_offset_start: int = Field(..., ge=0, description="Global character position start")
    char_offset_end: int = Field(..., ge=0, description="Global character position end")


class ScriptDocument(BaseModel):
    """A submitted script or story document."""

    source_file: str = Field(..., description="Path to the source file")
    extraction_timestamp: datetime = Field(
        default_factory=datetime.now, description="When the document was loaded"
    )
    total_pages: int = Field(..., ge=1, description="Total number of pages")
    pages: list[PageContent] = Field(..., description="Content per page")
    total_characters: int = Field(..., ge=0, description="Total character count")

    @property
    def full_text(self) -> str:
        """Get concatenated text from all pages."""
        return "\n".join(page.text for page in self.pages)
