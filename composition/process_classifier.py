"""
Classificazione tipo di processo.

Mappa un'etichetta libera ("mixing", "Cold press blending", ...) su un tipo
del registro tramite overlap di token (Jaccard) più boost di dominio.
Non solleva mai eccezioni: ritorna sempre un membro dell'insieme valido.
"""
import logging
import re
from typing import Any, Dict, List, Optional, Sequence, Tuple

from core.process_types import DEFAULT_PROCESS_TYPE, ProcessTypeRegistry

logger = logging.getLogger(__name__)

_NON_ALNUM_RE = re.compile(r"[^a-z0-9]+")

# (pattern sull'etichetta normalizzata, tipo, boost)
DOMAIN_BOOSTS: Tuple[Tuple[re.Pattern, str, float], ...] = (
    (re.compile(r"blend|mix|beverage|drink|liquid|emulsion|infusion"), "blending", 0.35),
    (re.compile(r"mill|grind|powder|paste"), "milling", 0.35),
    (re.compile(r"dry|dehydrat|freeze"), "freezedrying", 0.35),
    (re.compile(r"print"), "printing", 0.35),
    (re.compile(r"cook|bak|boil|fry|roast|steam|grill"), "cooking", 0.35),
)


def normalize_label(value: Optional[str]) -> str:
    return _NON_ALNUM_RE.sub(" ", (value or "").lower()).strip()


def _tokens(value: str) -> set:
    return {token for token in value.split(" ") if token}


def rank_process_types(raw_type: Optional[str], valid_types: Sequence[str]) -> List[Tuple[str, float]]:
    """
    Ordina i tipi validi per punteggio decrescente.

    Punteggio = |intersezione| / |unione| dei token (unione minima 1) + boost di dominio.
    A parità di punteggio vale l'ordine del registro.

    Returns:
        Lista (tipo, punteggio)
    """
    raw = normalize_label(raw_type)
    raw_tokens = _tokens(raw)

    boosts: Dict[str, float] = {}
    for pattern, target, boost in DOMAIN_BOOSTS:
        if pattern.search(raw):
            boosts[target] = boosts.get(target, 0.0) + boost

    scored = []
    for position, candidate in enumerate(valid_types):
        candidate_tokens = _tokens(normalize_label(candidate))
        intersection = len(raw_tokens & candidate_tokens)
        union = len(raw_tokens | candidate_tokens) or 1
        score = intersection / union + boosts.get(candidate, 0.0)
        scored.append((position, candidate, score))

    # sort stabile: ordine del registro come tie-break
    scored.sort(key=lambda item: (-item[2], item[0]))
    return [(candidate, score) for _, candidate, score in scored]


def pick_closest_process_type(
    raw_type: Optional[str],
    valid_types: Sequence[str],
    label: Optional[str] = None,
    default: str = DEFAULT_PROCESS_TYPE,
) -> str:
    """
    Sceglie il tipo valido più vicino all'etichetta.

    Args:
        raw_type: Etichetta libera (anche None)
        valid_types: Tipi candidati
        label: Nome del nodo, solo per il log del ranking
        default: Tipo usato se non ci sono candidati

    Returns:
        Un membro di ``valid_types`` (o ``default`` se la lista è vuota)
    """
    if raw_type in valid_types:
        return raw_type
    if not valid_types:
        return default

    ranked = rank_process_types(raw_type, valid_types)
    top = ranked[0][0]
    if label:
        top_list = ", ".join(f"{name}:{score:.2f}" for name, score in ranked[:5])
        logger.info(f"[CLASSIFIER] Ranking per {label} ('{raw_type}'): {top_list}. Selected: {top}")
    return top


def classify_process_type(raw_type: Optional[str], registry: ProcessTypeRegistry) -> str:
    """Classifica un'etichetta rispetto ai tipi normalizzabili del registro."""
    return pick_closest_process_type(raw_type, registry.ranked_types, default=registry.fallback)


def normalize_process_types(instance: Any, registry: ProcessTypeRegistry, label: Optional[str] = None) -> None:
    """
    Normalizza ricorsivamente ``process.type`` su tutto l'albero (input annidati inclusi).

    Modifica l'albero in place.
    """
    if not isinstance(instance, dict):
        return
    process = instance.get("process")
    if not isinstance(process, dict):
        return

    node_label = label or instance.get("name") or instance.get("type") or "unknown"
    raw_type = process.get("type")
    process["type"] = pick_closest_process_type(
        raw_type if isinstance(raw_type, str) else None,
        registry.ranked_types,
        label=str(node_label),
        default=registry.fallback,
    )

    for input_instance in process.get("inputInstances") or []:
        if isinstance(input_instance, dict) and isinstance(input_instance.get("instance"), dict):
            nested = input_instance["instance"]
            normalize_process_types(nested, registry, nested.get("name") or nested.get("type") or "input")
