"""
Structure-aware chunking for HTML, spreadsheet and crawled-site origins.

Chunk boundaries follow the explicit structure of the source:
- HTML: heading-delimited sections (h1-h3), prefixed with the heading path
- Spreadsheets: blocks of rows, restarting at every "Hoja:" sheet marker
- Web pages: one block per page, prefixed with its URL

Long blocks are split on paragraph boundaries to respect a character
budget; a single paragraph longer than the budget is hard-sliced.
"""

import logging
import re
from dataclasses import dataclass
from typing import Optional

from bs4 import BeautifulSoup, NavigableString, Tag

from ..models import Chunk, ChunkType, Document, HtmlSection, OriginKind, WebPage

logger = logging.getLogger(__name__)

PARAGRAPH_BREAK = re.compile(r"\n{2,}")
SHEET_MARKER = re.compile(r"^Hoja:\s*", re.IGNORECASE)
HEADING_TAGS = ["h1", "h2", "h3"]
STRIPPED_TAGS = ["script", "style", "noscript", "iframe", "svg", "canvas", "nav", "footer", "header", "form"]


@dataclass
class StructuredChunkerConfig:
    """Configuration for structure-aware chunking."""
    max_chars: int = 3200
    rows_per_chunk: int = 30
    max_chunks: int = 600
    min_section_chars: int = 80


def normalize_whitespace(value: str) -> str:
    return " ".join(str(value or "").split())


def split_long_text(text: str, max_chars: int = 3200) -> list[str]:
    """Split text into pieces of at most ``max_chars`` on paragraph boundaries.

    Args:
        text: Text to split
        max_chars: Character budget per piece

    Returns:
        Pieces in order; a paragraph longer than the budget is sliced
    """
    cleaned = (text or "").strip()
    if not cleaned:
        return []
    if len(cleaned) <= max_chars:
        return [cleaned]

    paragraphs = [p.strip() for p in PARAGRAPH_BREAK.split(cleaned) if p.strip()]
    pieces = []
    buffer = ""
    for paragraph in paragraphs:
        candidate = f"{buffer}\n\n{paragraph}" if buffer else paragraph
        if len(candidate) <= max_chars:
            buffer = candidate
            continue
        if buffer:
            pieces.append(buffer)
            buffer = ""
        if len(paragraph) <= max_chars:
            buffer = paragraph
            continue
        for start in range(0, len(paragraph), max_chars):
            pieces.append(paragraph[start:start + max_chars])
    if buffer:
        pieces.append(buffer)
    return pieces


def _heading_level(tag: Tag) -> int:
    try:
        return int(tag.name[1])
    except (IndexError, ValueError):
        return 3


def _section_text(heading: Tag) -> str:
    """Text between a heading and the next h1-h3 sibling."""
    parts = []
    for sibling in heading.next_siblings:
        if isinstance(sibling, Tag):
            if sibling.name in HEADING_TAGS:
                break
            if sibling.find(HEADING_TAGS):
                # Stop at containers holding the next heading
                break
            text = sibling.get_text(" ", strip=True)
        elif isinstance(sibling, NavigableString):
            text = str(sibling).strip()
        else:
            continue
        if text:
            parts.append(text)
    return normalize_whitespace("\n".join(parts))


def extract_html_sections(html: str, base_url: str = "", min_chars: int = 80) -> list[HtmlSection]:
    """Extract heading-delimited sections from raw HTML.

    Args:
        html: Raw HTML
        base_url: URL recorded on every section
        min_chars: Sections with less text are dropped

    Returns:
        Sections with their heading path, de-duplicated by text
    """
    if not html or not html.strip():
        return []

    soup = BeautifulSoup(html, "html.parser")
    for element in soup(STRIPPED_TAGS):
        element.decompose()

    base = soup.body or soup
    headings = base.find_all(HEADING_TAGS)

    if not headings:
        text = normalize_whitespace(base.get_text(" ", strip=True))
        return [HtmlSection(heading_path=[], text=text, url=base_url)] if text else []

    stack: list[tuple[int, str]] = []
    sections = []
    seen = set()
    for heading in headings:
        heading_text = normalize_whitespace(heading.get_text(" ", strip=True))
        if not heading_text:
            continue

        level = _heading_level(heading)
        while stack and stack[-1][0] >= level:
            stack.pop()
        stack.append((level, heading_text))

        text = _section_text(heading)
        if len(text) < min_chars or text in seen:
            continue
        seen.add(text)
        sections.append(HtmlSection(
            heading_path=[t for _, t in stack],
            text=text,
            url=base_url,
        ))

    logger.debug(f"[CHUNKER] Extracted {len(sections)} HTML sections from {base_url or 'inline HTML'}")
    return sections


class StructuredChunker:
    """Chunk documents whose origin carries explicit structure."""

    def __init__(self, config: Optional[StructuredChunkerConfig] = None):
        self.config = config or StructuredChunkerConfig()

    def _make_chunks(self, pieces: list[tuple[str, Optional[str], dict]], chunk_type: ChunkType) -> list[Chunk]:
        chunks = []
        for text, section, metadata in pieces[:self.config.max_chunks]:
            chunks.append(Chunk(
                type=chunk_type,
                text=text,
                index=len(chunks),
                section=section,
                token_count=len(text.split()),
                metadata=metadata,
            ))
        return chunks

    def chunk_html_sections(self, sections: list[HtmlSection], source_url: str = "") -> list[Chunk]:
        """One or more chunks per HTML section, prefixed with heading path and URL."""
        pieces = []
        for section in sections:
            body = (section.text or "").strip()
            if not body:
                continue
            url = section.url or source_url
            header_lines = []
            if section.heading_path:
                header_lines.append(f"Sección: {' > '.join(section.heading_path)}")
            if url:
                header_lines.append(f"Fuente: {url}")
            combined = "\n".join(header_lines + [body])
            label = " > ".join(section.heading_path) or None
            for piece in split_long_text(combined, self.config.max_chars):
                pieces.append((piece, label, {
                    "kind": "html_section",
                    "heading_path": list(section.heading_path),
                    "url": url,
                }))
                if len(pieces) >= self.config.max_chunks:
                    return self._make_chunks(pieces, ChunkType.CONTENT)
        return self._make_chunks(pieces, ChunkType.CONTENT)

    def chunk_spreadsheet(self, text: str) -> list[Chunk]:
        """Fixed-size row blocks; "Hoja: <name>" lines switch sheets."""
        if not text or not text.strip():
            return []

        pieces = []
        sheet = ""
        rows: list[str] = []
        block_start = 1

        def flush():
            nonlocal rows, block_start
            if not rows:
                return
            row_end = block_start + len(rows) - 1
            body = "\n".join(rows)
            pieces.append((f"Hoja: {sheet}\n{body}" if sheet else body, sheet or None, {
                "kind": "table_rows",
                "sheet": sheet or None,
                "row_start": block_start,
                "row_end": row_end,
            }))
            rows = []
            block_start = row_end + 1

        for raw_line in text.splitlines():
            line = raw_line.strip()
            if not line:
                continue
            if SHEET_MARKER.match(line):
                flush()
                sheet = SHEET_MARKER.sub("", line).strip()
                block_start = 1
                continue
            rows.append(line)
            if len(rows) >= self.config.rows_per_chunk:
                flush()
                if len(pieces) >= self.config.max_chunks:
                    break
        flush()
        return self._make_chunks(pieces, ChunkType.CONTENT)

    def chunk_web_pages(self, pages: list[WebPage]) -> list[Chunk]:
        """One or more chunks per crawled page, prefixed with its URL."""
        pieces = []
        for page in pages:
            text = (page.text or "").strip()
            if not text:
                continue
            combined = f"Fuente: {page.url}\n{text}" if page.url else text
            for piece in split_long_text(combined, self.config.max_chars):
                pieces.append((piece, page.title or page.url or None, {"kind": "web_page", "url": page.url}))
                if len(pieces) >= self.config.max_chunks:
                    return self._make_chunks(pieces, ChunkType.CONTENT)
        return self._make_chunks(pieces, ChunkType.CONTENT)

    def chunk_document(self, document: Document) -> Optional[list[Chunk]]:
        """Structural chunks for a document, or None when it has no usable structure."""
        if document.origin is OriginKind.SPREADSHEET:
            return self.chunk_spreadsheet(document.text)
        if document.origin is OriginKind.HTML and document.html_sections:
            return self.chunk_html_sections(document.html_sections, document.source_url)
        if document.web_pages:
            return self.chunk_web_pages(document.web_pages)
        return None
