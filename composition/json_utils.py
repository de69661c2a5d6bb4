"""
Estrazione JSON tollerante dall'output dei modelli linguistici.

Contratto: ritorna sempre un ParseResult, non solleva mai eccezioni.
"""
import json
import logging
import re
from typing import Any, Optional

from composition.types import ParseResult, no_parse, parsed

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"```(?:json|JSON)?\s*(.*?)```", re.DOTALL)


def _loads_object(candidate: str) -> Optional[Any]:
    try:
        return json.loads(candidate)
    except (json.JSONDecodeError, ValueError):
        return None


def _first_balanced_object(text: str) -> Optional[str]:
    """Primo blocco ``{...}`` bilanciato (ignora parentesi dentro le stringhe)."""
    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for index in range(start, len(text)):
            char = text[index]
            if in_string:
                if escaped:
                    escaped = False
                elif char == "\\":
                    escaped = True
                elif char == '"':
                    in_string = False
                continue
            if char == '"':
                in_string = True
            elif char == "{":
                depth += 1
            elif char == "}":
                depth -= 1
                if depth == 0:
                    return text[start:index + 1]
        start = text.find("{", start + 1)
    return None


def parse_json_lenient(text: Optional[str]) -> ParseResult:
    """
    Estrae il primo oggetto JSON da testo arbitrario.

    Ordine tentativi:
    1. Parse diretto del testo
    2. Contenuto di code fence ```json ... ```
    3. Blocco dal primo '{' all'ultimo '}' (greedy)
    4. Primo blocco '{...}' bilanciato

    Args:
        text: Risposta grezza del modello

    Returns:
        ParseResult ok con il dict, oppure no_parse con il motivo
    """
    if not text or not text.strip():
        return no_parse("empty")

    stripped = text.strip()
    candidates = [stripped]

    fence = _FENCE_RE.search(stripped)
    if fence:
        candidates.append(fence.group(1).strip())

    first = stripped.find("{")
    last = stripped.rfind("}")
    if first != -1 and last > first:
        candidates.append(stripped[first:last + 1])

    balanced = _first_balanced_object(stripped)
    if balanced:
        candidates.append(balanced)

    saw_non_object = False
    for candidate in candidates:
        value = _loads_object(candidate)
        if isinstance(value, dict):
            return parsed(value)
        if value is not None:
            saw_non_object = True

    if first == -1:
        return no_parse("not_object" if saw_non_object else "no_object")

    logger.debug(f"[JSON] Nessun oggetto JSON valido in risposta: {stripped[:200]}")
    return no_parse("invalid_json")
