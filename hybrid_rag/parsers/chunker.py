"""
Line-oriented chunker for generic extracted text.

Lines are classified one at a time:
- TITLE: short line that looks like a heading (markdown hashes, ALL CAPS,
  or a numbered-section prefix such as "1. Introducción")
- TABLE_HEADER: line with a pipe or a run of 3+ spaces (tabular layout)
- CONTENT: everything else, accumulated until the token budget is reached

Every non-blank source line lands in exactly one chunk, in reading order.
"""

import re
from dataclasses import dataclass
from typing import Optional

from ..models import Chunk, ChunkType


MARKDOWN_HEADER = re.compile(r"^#+")
NUMBERED_SECTION = re.compile(r"^\d+[.\-]\s+(\w)")
TABLE_SPACING = re.compile(r"\s{3,}")
ALL_CAPS_EXTRA = set(" 0123456789-.")


@dataclass
class ChunkerConfig:
    """Configuration for line-oriented chunking."""
    max_tokens: int = 500
    max_title_length: int = 100


def count_tokens(text: str) -> int:
    """Whitespace token count used for chunk budgets."""
    return len(text.split())


def _is_all_caps(line: str) -> bool:
    # Unicode-aware version of /^[A-Z][A-Z\s0-9\-\.]+$/
    if len(line) < 2 or not (line[0].isalpha() and line[0].isupper()):
        return False
    return all(
        (ch.isalpha() and ch.isupper()) or ch in ALL_CAPS_EXTRA or ch.isspace()
        for ch in line[1:]
    )


def _is_numbered_section(line: str) -> bool:
    match = NUMBERED_SECTION.match(line)
    return bool(match) and match.group(1).isupper()


def is_title_line(line: str, max_length: int = 100) -> bool:
    """Check whether a stripped line looks like a heading."""
    if not line or len(line) >= max_length:
        return False
    return bool(MARKDOWN_HEADER.match(line)) or _is_all_caps(line) or _is_numbered_section(line)


def is_table_line(line: str) -> bool:
    """Check whether a stripped line has a tabular layout."""
    return "|" in line or bool(TABLE_SPACING.search(line))


def classify_line(line: str, config: Optional[ChunkerConfig] = None) -> ChunkType:
    """Classify a single stripped line."""
    config = config or ChunkerConfig()
    if is_title_line(line, config.max_title_length):
        return ChunkType.TITLE
    if is_table_line(line):
        return ChunkType.TABLE_HEADER
    return ChunkType.CONTENT


class TextChunker:
    """Split generic extracted text into typed, ordered chunks."""

    def __init__(self, config: Optional[ChunkerConfig] = None):
        self.config = config or ChunkerConfig()

    def chunk(self, text: str) -> list[Chunk]:
        """Chunk a document's text.

        Args:
            text: Raw extracted text

        Returns:
            Chunks in reading order; empty for empty or blank input
        """
        if not text or not text.strip():
            return []

        chunks: list[Chunk] = []
        section: Optional[str] = None
        buffer: list[str] = []
        buffer_tokens = 0

        def emit(chunk_type: ChunkType, body: str, tokens: int):
            chunks.append(Chunk(
                type=chunk_type,
                text=body,
                index=len(chunks),
                section=section,
                token_count=tokens,
            ))

        def flush():
            nonlocal buffer, buffer_tokens
            if buffer:
                emit(ChunkType.CONTENT, "\n".join(buffer), buffer_tokens)
                buffer = []
                buffer_tokens = 0

        for raw_line in text.splitlines():
            line = raw_line.strip()
            if not line:
                continue

            line_type = classify_line(line, self.config)
            line_tokens = count_tokens(line)

            if line_type is ChunkType.TITLE:
                flush()
                section = line
                emit(ChunkType.TITLE, line, line_tokens)
            elif line_type is ChunkType.TABLE_HEADER:
                flush()
                emit(ChunkType.TABLE_HEADER, line, line_tokens)
            else:
                if buffer and buffer_tokens + line_tokens > self.config.max_tokens:
                    flush()
                # A single line over the budget becomes its own chunk
                buffer.append(line)
                buffer_tokens += line_tokens

        flush()
        return chunks


def chunk_text(text: str, max_tokens: int = 500) -> list[Chunk]:
    """Convenience wrapper around ``TextChunker``."""
    return TextChunker(ChunkerConfig(max_tokens=max_tokens)).chunk(text)
