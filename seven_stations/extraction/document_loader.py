"""Loading of submitted scripts from disk (PDF via pdfplumber, or plain text)."""

from pathlib import Path

import pdfplumber
import structlog

from seven_stations.models import PageContent, ScriptDocument

logger = structlog.get_logger(__name__)

# Form feed separates pages in plain text exports
PAGE_BREAK = "\f"


class DocumentLoadError(Exception):
    """Error while loading a submitted document."""

    pass


def load_script(path: str | Path) -> ScriptDocument:
    """Load a script from a PDF or text file.

    Args:
        path: Path to the document.

    Returns:
        ScriptDocument with per-page content and character offsets.

    Raises:
        DocumentLoadError: If the file is missing or unreadable.
    """
    path = Path(path)

    if not path.exists():
        raise DocumentLoadError(f"File not found: {path}")

    if path.suffix.lower() == ".pdf":
        page_texts = _read_pdf_pages(path)
    else:
        page_texts = _read_text_pages(path)

    pages: list[PageContent] = []
    char_offset = 0
    for page_num, text in enumerate(page_texts, start=1):
        text = _clean_page_text(text)
        pages.append(PageContent(
            page_number=page_num,
            text=text,
            char_offset_start=char_offset,
            char_offset_end=char_offset + len(text),
        ))
        char_offset += len(text) + 1  # +1 for newline between pages

    if not pages:
        pages = [PageContent(page_number=1, text="", char_offset_start=0, char_offset_end=0)]

    doc = ScriptDocument(
        source_file=str(path),
        total_pages=len(pages),
        pages=pages,
        total_characters=sum(len(p.text) for p in pages),
    )

    logger.info(
        "script_loaded",
        path=str(path),
        pages=doc.total_pages,
        total_chars=doc.total_characters,
    )
    return doc


def _read_pdf_pages(path: Path) -> list[str]:
    logger.info("extracting_pdf", path=str(path))
    try:
        with pdfplumber.open(path) as pdf:
            return [page.extract_text() or "" for page in pdf.pages]
    except Exception as e:
        logger.error("pdf_extraction_failed", error=str(e))
        raise DocumentLoadError(f"Failed to extract PDF: {e}") from e


def _read_text_pages(path: Path) -> list[str]:
    try:
        content = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise DocumentLoadError(f"Failed to read {path}: {e}") from e
    return content.split(PAGE_BREAK)


def _clean_page_text(text: str) -> str:
    """Clean extracted page text.

    - Strips trailing whitespace from lines
    - Normalizes runs of spaces to one (leading indentation is dropped too)
    - Collapses three or more newlines to a paragraph break
    """
    if not text:
        return ""

    lines = []
    for line in text.split("\n"):
        line = line.rstrip()
        while "  " in line:
            line = line.replace("  ", " ")
        lines.append(line.strip())

    result = "\n".join(lines)
    while "\n\n\n" in result:
        result = result.replace("\n\n\n", "\n\n")

    return result.strip()
