"""
Estrazione lista ingredienti da testo grezzo (scraping, cataloghi, testo libero).

Cerca l'ultima occorrenza di una keyword multilingua ("ingredients",
"zutaten", ...), isola una finestra limitata dopo la keyword e la spezza in
voci ``{name, percent?}`` nell'ordine in cui compaiono nel testo.
Senza keyword non indovina: ritorna lista vuota.
"""
import logging
import re
from typing import List, Optional, Tuple

from composition.types import ExtractedIngredient

logger = logging.getLogger(__name__)

INGREDIENT_KEYWORDS = (
    "ingredients",
    "composition",
    "összetevők",
    "zutaten",
    "ingrédients",
    "ingredientes",
    "ingredienti",
    "composizione",
    "složení",
    "zloženie",
)

WINDOW_CHARS = 2000

_MARKUP_RE = re.compile(r"</?[a-zA-Z][^>]*>")
_WHITESPACE_RE = re.compile(r"\s+")
# Virgola separatore, ma non virgola decimale (1,5%)
_SPLIT_RE = re.compile(r"(?<!\d),|,(?!\d)|;|\(|\)|\[|\]")
_BULLET_RE = re.compile(r"^[-–•*·]+\s*")
_LT_PERCENT_RE = re.compile(r"<\s*(\d+(?:[.,]\d+)?)\s*%")
_PERCENT_RE = re.compile(r"(\d+(?:[.,]\d+)?)\s*%")
_PERCENT_TOKEN_RE = re.compile(r"<?\s*\d+(?:[.,]\d+)?\s*%")
# Fine frase: punto non decimale
_SENTENCE_END_RE = re.compile(r"(?<!\d)\.(?!\d)|\.(?=\s|$)")


def find_keyword(text: str) -> Optional[Tuple[str, int]]:
    """
    Trova l'ultima occorrenza di una qualsiasi keyword ingredienti.

    Returns:
        Tuple (keyword, indice) oppure None se nessuna keyword è presente
    """
    lower = text.lower()
    best: Optional[Tuple[str, int]] = None
    for keyword in INGREDIENT_KEYWORDS:
        index = lower.rfind(keyword)
        if index == -1:
            continue
        if best is None or index > best[1]:
            best = (keyword, index)
    return best


def parse_percent(fragment: str) -> Optional[float]:
    """Percentuale in forma ``<N%`` (limite superiore) o ``N%``."""
    match = _LT_PERCENT_RE.search(fragment) or _PERCENT_RE.search(fragment)
    if not match:
        return None
    return float(match.group(1).replace(",", "."))


def _ingredient_window(text: str, keyword: str, index: int) -> str:
    window = text[index:index + WINDOW_CHARS]
    window = _MARKUP_RE.sub(" ", window)
    window = _WHITESPACE_RE.sub(" ", window).strip()

    # Salta la keyword e l'eventuale separatore ("Ingredients:", "Zutaten -")
    body = window[len(keyword):]
    body = re.sub(r"^\s*[:\-–]?\s*", "", body)

    end = _SENTENCE_END_RE.search(body)
    if end:
        body = body[:end.start()]
    return body


def extract_ingredients_from_text(text: Optional[str]) -> List[ExtractedIngredient]:
    """
    Estrae lista piatta e ordinata di ingredienti da testo.

    Args:
        text: Testo aggregato (scraping, catalogo, testo utente)

    Returns:
        Lista ExtractedIngredient nell'ordine di prima apparizione (vuota se nessuna keyword)
    """
    if not text:
        return []

    found = find_keyword(text)
    if found is None:
        return []

    keyword, index = found
    body = _ingredient_window(text, keyword, index)

    ingredients: List[ExtractedIngredient] = []
    for fragment in _SPLIT_RE.split(body):
        fragment = _BULLET_RE.sub("", fragment.strip()).strip()
        if not fragment:
            continue
        percent = parse_percent(fragment)
        name = _PERCENT_TOKEN_RE.sub(" ", fragment)
        name = _WHITESPACE_RE.sub(" ", name).strip(" :-–*")
        if len(name) <= 1:
            continue
        ingredients.append(ExtractedIngredient(name=name, percent=percent))

    logger.debug(f"[INGREDIENTS] Keyword '{keyword}' at {index}: {len(ingredients)} ingredienti")
    return ingredients
