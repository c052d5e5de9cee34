"""
Tests for the line-oriented and structural chunkers.
"""

import pytest

from hybrid_rag.models import ChunkType, Document, HtmlSection, OriginKind, WebPage
from hybrid_rag.parsers import (
    ChunkerConfig,
    StructuredChunker,
    StructuredChunkerConfig,
    TextChunker,
    chunk_for_embedding,
    classify_line,
    extract_html_sections,
    split_long_text,
)


class TestLineClassification:
    """Tests for title / table / content detection."""

    def test_chapter_heading_is_title(self):
        """Upper-case heading with accents and digits is a title."""
        assert classify_line("CAPÍTULO 1") == ChunkType.TITLE

    def test_numbered_section_is_title(self):
        """Numbered section with a capitalized word is a title."""
        assert classify_line("1. Introducción") == ChunkType.TITLE

    def test_lowercase_numbered_line_is_content(self):
        """Numbered line starting in lower case is not a heading."""
        assert classify_line("1. introducción al curso") == ChunkType.CONTENT

    def test_markdown_header_is_title(self):
        """Markdown hashes mark a title."""
        assert classify_line("# Horarios de Clase") == ChunkType.TITLE

    def test_wide_pipe_table_is_table_header(self):
        """A 60-column pipe-delimited line is a table line."""
        line = "|".join(f"col{i}" for i in range(60))
        assert classify_line(line) == ChunkType.TABLE_HEADER

    def test_spaced_columns_are_table_header(self):
        """Runs of three or more spaces indicate tabular layout."""
        assert classify_line("Nombre   Edad   Ciudad") == ChunkType.TABLE_HEADER

    def test_long_caps_line_is_not_title(self):
        """Titles are bounded by the maximum title length."""
        line = "A" * 150
        assert classify_line(line) == ChunkType.CONTENT


class TestTextChunker:
    """Tests for generic-text chunking."""

    SAMPLE = (
        "REGLAMENTO ESTUDIANTIL\n"
        "\n"
        "Este reglamento aplica a todos los estudiantes.\n"
        "Los estudiantes deben conocerlo.\n"
        "1. Matrícula\n"
        "La matrícula se realiza cada semestre.\n"
        "Programa | Créditos | Valor\n"
        "Ingeniería | 160 | 1000\n"
    )

    def test_empty_input_gives_no_chunks(self):
        """Empty and blank text produce no chunks."""
        chunker = TextChunker()
        assert chunker.chunk("") == []
        assert chunker.chunk("   \n\n  ") == []

    def test_non_empty_input_gives_chunks(self):
        """Any non-blank text produces at least one chunk."""
        assert len(TextChunker().chunk("hola")) == 1

    def test_chunks_preserve_line_order_and_coverage(self):
        """Re-joining chunks yields the original non-blank lines in order."""
        chunks = TextChunker().chunk(self.SAMPLE)
        lines = [line.strip() for line in self.SAMPLE.splitlines() if line.strip()]
        rejoined = [line for chunk in chunks for line in chunk.text.split("\n")]
        assert rejoined == lines

    def test_indices_are_sequential(self):
        """Chunk indices follow reading order from zero."""
        chunks = TextChunker().chunk(self.SAMPLE)
        assert [c.index for c in chunks] == list(range(len(chunks)))

    def test_chunk_types(self):
        """Headings, table lines and content are typed separately."""
        chunks = TextChunker().chunk(self.SAMPLE)
        types = [c.type for c in chunks]
        assert types == [
            ChunkType.TITLE,
            ChunkType.CONTENT,
            ChunkType.TITLE,
            ChunkType.CONTENT,
            ChunkType.TABLE_HEADER,
            ChunkType.TABLE_HEADER,
        ]

    def test_section_follows_latest_title(self):
        """Chunks carry the most recent title as their section."""
        chunks = TextChunker().chunk(self.SAMPLE)
        assert chunks[1].section == "REGLAMENTO ESTUDIANTIL"
        assert chunks[3].section == "1. Matrícula"

    def test_content_split_on_token_budget(self):
        """Content is flushed before exceeding the token budget."""
        text = "\n".join(["uno dos tres cuatro"] * 5)
        chunks = TextChunker(ChunkerConfig(max_tokens=8)).chunk(text)
        assert len(chunks) == 3
        assert all(c.token_count <= 8 for c in chunks)

    def test_single_long_line_is_own_chunk(self):
        """A line longer than the budget is never dropped."""
        long_line = " ".join(["palabra"] * 20)
        chunks = TextChunker(ChunkerConfig(max_tokens=5)).chunk(f"corta\n{long_line}\notra")
        assert [c.text for c in chunks] == ["corta", long_line, "otra"]


class TestStructuredChunker:
    """Tests for HTML, spreadsheet and web-page chunking."""

    HTML = """
    <html><head><script>var x = 1;</script></head><body>
      <nav>Inicio | Contacto</nav>
      <h1>Facultad de Ingeniería</h1>
      <p>La facultad ofrece programas de pregrado y posgrado con enfoque práctico y laboratorios modernos.</p>
      <h2>Admisiones</h2>
      <p>Las inscripciones están abiertas hasta el 30 de junio y requieren el diploma de bachiller y documento.</p>
      <h2>Corto</h2>
      <p>Nada.</p>
    </body></html>
    """

    def test_html_sections_follow_heading_path(self):
        """Sections carry the stack of enclosing headings."""
        sections = extract_html_sections(self.HTML, base_url="https://example.edu")
        assert [s.heading_path for s in sections] == [
            ["Facultad de Ingeniería"],
            ["Facultad de Ingeniería", "Admisiones"],
        ]
        assert all(s.url == "https://example.edu" for s in sections)

    def test_html_strips_scripts_and_navigation(self):
        """Script and nav content never reaches section text."""
        sections = extract_html_sections(self.HTML)
        joined = " ".join(s.text for s in sections)
        assert "var x" not in joined
        assert "Contacto" not in joined

    def test_html_without_headings_is_one_section(self):
        """Body text without headings becomes a single section."""
        sections = extract_html_sections("<p>Solo un párrafo.</p>")
        assert len(sections) == 1
        assert sections[0].heading_path == []

    def test_html_section_chunks_have_prefixes(self):
        """Section chunks start with the heading path and source lines."""
        sections = [HtmlSection(heading_path=["Facultad", "Admisiones"], text="Texto de admisiones", url="https://u")]
        chunks = StructuredChunker().chunk_html_sections(sections)
        assert chunks[0].text.startswith("Sección: Facultad > Admisiones\nFuente: https://u\n")
        assert chunks[0].type == ChunkType.CONTENT

    def test_spreadsheet_rows_restart_per_sheet(self):
        """Row numbering restarts at each sheet marker."""
        text = "Hoja: Costos\n" + "\n".join(f"fila {i}" for i in range(5)) + "\nHoja: Fechas\nfila a\nfila b"
        chunks = StructuredChunker(StructuredChunkerConfig(rows_per_chunk=3)).chunk_spreadsheet(text)
        meta = [(c.metadata["sheet"], c.metadata["row_start"], c.metadata["row_end"]) for c in chunks]
        assert meta == [("Costos", 1, 3), ("Costos", 4, 5), ("Fechas", 1, 2)]
        assert chunks[0].text.startswith("Hoja: Costos\n")

    def test_structural_chunk_cap(self):
        """No more than max_chunks structural chunks per document."""
        text = "\n".join(f"fila {i}" for i in range(50))
        config = StructuredChunkerConfig(rows_per_chunk=1, max_chunks=10)
        assert len(StructuredChunker(config).chunk_spreadsheet(text)) == 10

    def test_split_long_text_respects_budget(self):
        """Pieces never exceed the character budget."""
        text = "\n\n".join(["a" * 40] * 5) + "\n\n" + "b" * 250
        pieces = split_long_text(text, max_chars=100)
        assert all(len(p) <= 100 for p in pieces)
        assert "".join(pieces).replace("\n", "") == text.replace("\n", "")

    def test_embedding_chunks_use_structure_when_available(self):
        """Web pages produce page chunks, plain text falls back to generic chunks."""
        web = Document(
            doc_id="web",
            name="sitio",
            text="ignorado",
            origin=OriginKind.WEB_PAGES,
            web_pages=[WebPage(url="https://u/a", text="Página A"), WebPage(url="https://u/b", text="Página B")],
        )
        chunks = chunk_for_embedding(web)
        assert [c.text for c in chunks] == ["Fuente: https://u/a\nPágina A", "Fuente: https://u/b\nPágina B"]

        plain = Document(doc_id="p", name="p", text="TITULO\ncontenido")
        assert [c.type for c in chunk_for_embedding(plain)] == [ChunkType.TITLE, ChunkType.CONTENT]


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
