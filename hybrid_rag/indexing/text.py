"""
Text normalization and analysis for lexical indexing.

Tokens are lower-cased, stripped of diacritics, filtered against a
Spanish/English stop-list (minimum length 3) and stemmed with NLTK's
Snowball stemmer. The same analyzer must be used for chunks and queries.
"""

import re
import unicodedata
from functools import lru_cache
from typing import Optional

from nltk.stem.snowball import SnowballStemmer

TOKEN_PATTERN = re.compile(r"[a-z0-9]+")

SPANISH_STOPWORDS = frozenset("""
    a al algo algun alguna algunas alguno algunos ante antes aqui asi aun bajo bien cada casi
    como con contra cual cuales cualquier cuando cuanta cuantas cuanto cuantos de del desde
    donde dos e el ella ellas ello ellos en entre era eran es esa esas ese eso esos esta estaba
    estado estan estar estas este esto estos fue fueron ha hace hacia han has hasta hay la las
    le les lo los mas me mi mis mucho muy nada ni no nos nosotros o otra otras otro otros para
    pero poco por porque puede pueden que quien quienes se sea ser si sido sin sobre solo son su
    sus tambien tan tanto te tener tiene tienen todo todos tu tus un una unas uno unos usted
    ustedes y ya yo dame dime favor hola gracias quiero saber necesito informacion
""".split())

ENGLISH_STOPWORDS = frozenset("""
    a about above after again all also am an and any are as at be because been before being
    between both but by can could did do does doing down during each few for from further had
    has have having he her here hers him his how i if in into is it its just me more most my no
    nor not now of off on once only or other our out over own same she should so some such than
    that the their them then there these they this those through to too under until up very was
    we were what when where which while who whom why will with would you your
""".split())

DEFAULT_STOPWORDS = SPANISH_STOPWORDS | ENGLISH_STOPWORDS


def strip_diacritics(text: str) -> str:
    """Remove combining marks after NFKD decomposition ("Cálculo" -> "Calculo")."""
    decomposed = unicodedata.normalize("NFKD", text)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def normalize_text(text: str) -> str:
    """Lower-case and strip diacritics."""
    return strip_diacritics((text or "").lower())


@lru_cache(maxsize=8)
def _get_stemmer(language: str) -> SnowballStemmer:
    return SnowballStemmer(language)


class TextAnalyzer:
    """Turn raw text into stemmed index terms."""

    def __init__(
        self,
        language: str = "spanish",
        stopwords: Optional[frozenset[str]] = None,
        min_token_length: int = 3,
    ):
        self.language = language
        self.stopwords = DEFAULT_STOPWORDS if stopwords is None else stopwords
        self.min_token_length = min_token_length
        self._stemmer = _get_stemmer(language)
        self._stem_cache: dict[str, str] = {}

    def stem(self, token: str) -> str:
        stemmed = self._stem_cache.get(token)
        if stemmed is None:
            stemmed = self._stemmer.stem(token)
            self._stem_cache[token] = stemmed
        return stemmed

    def raw_tokens(self, text: str) -> list[str]:
        """Normalized tokens that survive the stop-list and length filter."""
        return [
            token for token in TOKEN_PATTERN.findall(normalize_text(text))
            if len(token) >= self.min_token_length and token not in self.stopwords
        ]

    def analyze(self, text: str) -> list[str]:
        """Stemmed terms in text order (duplicates kept)."""
        return [self.stem(token) for token in self.raw_tokens(text)]

    def query_terms(self, text: str) -> list[str]:
        """Unique stemmed terms of a query, first occurrence order."""
        return list(dict.fromkeys(self.analyze(text)))
