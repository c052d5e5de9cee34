"""
Question analysis helpers.

- is_list_query: leading interrogative/quantifier ("¿Cuáles...", "Lista...")
- extract_question_terms: surface terms used by the document heuristics
- wants_full_information: user asks for a whole document
"""

import re

from ..indexing.text import normalize_text

LIST_QUERY_PATTERN = re.compile(
    r"^(cuales|cuantos|cuantas|que\s+\w+\s+(hay|existen|ofrecen|tienen)|"
    r"lista|listar|listame|enumera|enumerar|menciona|nombra|todos|todas|"
    r"list|which|what\s+are|how\s+many|name\s+all)\b"
)

FULL_INFO_PATTERN = re.compile(
    r"toda\s+la\s+informacion|mostrar\s+toda|todo\s+el\s+contenido|contenido\s+completo|"
    r"all\s+the\s+information|full\s+content"
)

QUESTION_STOP_TERMS = frozenset({
    "quien", "es", "de", "la", "el", "los", "las", "un", "una", "que", "y", "en",
    "por", "para", "del", "al", "sobre", "cual", "cuales", "como", "donde", "cuando",
})

NON_TERM = re.compile(r"[^\w\s]")


def _clean(question: str) -> str:
    return normalize_text(question).strip().lstrip("¿¡").strip()


def is_list_query(question: str) -> bool:
    """Whether the question asks for an enumeration."""
    return bool(LIST_QUERY_PATTERN.match(NON_TERM.sub(" ", _clean(question)).strip()))


def extract_question_terms(question: str) -> list[str]:
    """Lower-cased, accent-free terms longer than 2 characters."""
    words = NON_TERM.sub(" ", normalize_text(question)).split()
    return [w for w in words if len(w) > 2 and w not in QUESTION_STOP_TERMS]


def wants_full_information(question: str) -> bool:
    """Explicit request for a whole document, or a bare one-word question."""
    if FULL_INFO_PATTERN.search(_clean(question)):
        return True
    return len(extract_question_terms(question)) == 1 and len(question.strip()) <= 20
