"""
Registro dei tipi di processo validi.

Sostituisce la lettura del file di tipi: l'enum è un oggetto esplicito,
versionato, costruito una sola volta all'avvio e passato per riferimento
ai componenti che ne hanno bisogno.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional, Tuple

DEFAULT_PROCESS_TYPES: Tuple[str, ...] = (
    "printing",
    "milling",
    "freezedrying",
    "blending",
    "harvest",
    "sale",
    "cooking",
)
DEFAULT_PROCESS_TYPE = "blending"

# Tipi ammessi solo se esplicitamente richiesti
EXPLICIT_ONLY_TYPES = frozenset({"harvest", "sale"})


@dataclass(frozen=True)
class ProcessTypeRegistry:
    version: str
    types: Tuple[str, ...]
    default: str = DEFAULT_PROCESS_TYPE

    def __post_init__(self):
        if not self.types:
            raise ValueError("ProcessTypeRegistry richiede almeno un tipo di processo")

    def __contains__(self, value: object) -> bool:
        return value in self.types

    @property
    def ranked_types(self) -> Tuple[str, ...]:
        """Tipi candidati alla normalizzazione (senza harvest/sale, salvo registro che ne resterebbe vuoto)."""
        ranked = tuple(t for t in self.types if t not in EXPLICIT_ONLY_TYPES)
        return ranked or self.types

    @property
    def fallback(self) -> str:
        if self.default in self.types:
            return self.default
        return self.types[0]


def build_registry(
    types: Optional[Iterable[str]] = None,
    version: str = "1",
    default: str = DEFAULT_PROCESS_TYPE,
) -> ProcessTypeRegistry:
    """Costruisce il registro dai tipi configurati (ordine preservato, duplicati rimossi)."""
    unique = []
    for item in types or DEFAULT_PROCESS_TYPES:
        item = str(item).strip()
        if item and item not in unique:
            unique.append(item)
    return ProcessTypeRegistry(version=version, types=tuple(unique), default=default)


def registry_from_config(config) -> ProcessTypeRegistry:
    return build_registry(
        types=config.get_process_types_list(),
        version=config.process_types_version,
        default=config.default_process_type,
    )
