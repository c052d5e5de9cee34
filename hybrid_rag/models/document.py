"""
Document and chunk data models.

This module defines:
- OriginKind: where the extracted text came from
- Document: an ingested document as read by the engine
- HtmlSection / WebPage: optional structure supplied with the text
- ChunkType / Chunk: typed, ordered segments produced by the chunker
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional


def utc_now_iso() -> str:
    """Current UTC time as an ISO-8601 string."""
    return datetime.now(timezone.utc).isoformat()


class OriginKind(Enum):
    """Origin of a document's extracted text."""
    PLAIN = "plain"
    HTML = "html"
    SPREADSHEET = "spreadsheet"
    WEB_PAGES = "web_pages"


class ChunkType(Enum):
    """Classification of chunk content."""
    TITLE = "title"
    SECTION_HEADER = "section_header"
    TABLE_HEADER = "table_header"
    CONTENT = "content"
    LIST = "list"

    @property
    def is_heading(self) -> bool:
        """Titles and headers rank in the first bucket of hierarchical search."""
        return self in (ChunkType.TITLE, ChunkType.SECTION_HEADER)


@dataclass
class HtmlSection:
    """A heading-delimited section of an HTML page."""
    heading_path: list[str]
    text: str
    url: str = ""

    def to_dict(self) -> dict:
        return {"heading_path": list(self.heading_path), "text": self.text, "url": self.url}

    @classmethod
    def from_dict(cls, data: dict) -> "HtmlSection":
        return cls(
            heading_path=list(data.get("heading_path", [])),
            text=data.get("text", ""),
            url=data.get("url", ""),
        )


@dataclass
class WebPage:
    """A single crawled page."""
    url: str
    text: str
    title: str = ""

    def to_dict(self) -> dict:
        return {"url": self.url, "text": self.text, "title": self.title}

    @classmethod
    def from_dict(cls, data: dict) -> "WebPage":
        return cls(url=data["url"], text=data.get("text", ""), title=data.get("title", ""))


@dataclass
class Chunk:
    """A contiguous, typed span of a document's text."""
    type: ChunkType
    text: str
    index: int
    section: Optional[str] = None
    token_count: int = 0
    metadata: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "type": self.type.value,
            "text": self.text,
            "index": self.index,
            "section": self.section,
            "token_count": self.token_count,
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Chunk":
        return cls(
            type=ChunkType(data.get("type", "content")),
            text=data["text"],
            index=data.get("index", 0),
            section=data.get("section"),
            token_count=data.get("token_count", 0),
            metadata=dict(data.get("metadata", {})),
        )


@dataclass
class Document:
    """An ingested document.

    The ingestion collaborator owns the lifecycle; the engine only reads
    ``text`` and the optional structure, and uses ``updated_at`` for the
    corpus hash.
    """
    doc_id: str
    name: str
    text: str
    origin: OriginKind = OriginKind.PLAIN
    created_at: str = field(default_factory=utc_now_iso)
    updated_at: str = field(default_factory=utc_now_iso)
    source_url: str = ""
    html_sections: list[HtmlSection] = field(default_factory=list)
    web_pages: list[WebPage] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "doc_id": self.doc_id,
            "name": self.name,
            "text": self.text,
            "origin": self.origin.value,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "source_url": self.source_url,
            "html_sections": [s.to_dict() for s in self.html_sections],
            "web_pages": [p.to_dict() for p in self.web_pages],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Document":
        return cls(
            doc_id=data["doc_id"],
            name=data.get("name", data["doc_id"]),
            text=data.get("text", ""),
            origin=OriginKind(data.get("origin", "plain")),
            created_at=data.get("created_at", ""),
            updated_at=data.get("updated_at", ""),
            source_url=data.get("source_url", ""),
            html_sections=[HtmlSection.from_dict(s) for s in data.get("html_sections", [])],
            web_pages=[WebPage.from_dict(p) for p in data.get("web_pages", [])],
        )
