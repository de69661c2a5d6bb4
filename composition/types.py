from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Literal, Optional, Union

CatalogSource = Literal["OpenFoodFacts", "USDA FDC"]

ParseFailure = Literal["empty", "no_object", "invalid_json", "not_object"]


@dataclass
class ExtractedIngredient:
    name: str
    percent: Optional[float] = None

    @property
    def has_percent(self) -> bool:
        return self.percent is not None


@dataclass
class Candidate:
    source: CatalogSource
    name: Optional[str]
    id: Union[str, int, None]
    ingredients: Optional[str] = None
    brands: Optional[str] = None
    quantity: Optional[str] = None

    def to_prompt_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"source": self.source, "name": self.name, "ingredients": self.ingredients, "id": self.id}
        if self.brands is not None:
            data["brands"] = self.brands
        if self.quantity is not None:
            data["quantity"] = self.quantity
        return data


@dataclass
class ParseResult:
    ok: bool
    value: Dict[str, Any] = field(default_factory=dict)
    reason: Optional[ParseFailure] = None


def parsed(value: Dict[str, Any]) -> ParseResult:
    return ParseResult(ok=True, value=value)


def no_parse(reason: ParseFailure) -> ParseResult:
    return ParseResult(ok=False, reason=reason)
