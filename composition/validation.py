"""
Validation (Pydantic models) per l'albero prodotto → processo → input.

Definisce ItemModel/ProcessModel/InputModel, i modelli delle richieste HTTP
e la validazione finale dell'albero prodotto dalla pipeline.
"""
import logging
import re
from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

logger = logging.getLogger(__name__)

_NUMBER_RE = re.compile(r"-?\d+(?:[.,]\d+)?")


def coerce_quantity(value: Any) -> float:
    """
    Converte una quantità grezza (numero, stringa "50 g", None) in float >= 0.

    Valori non interpretabili o negativi diventano 0.
    """
    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        match = _NUMBER_RE.search(value)
        if not match:
            return 0.0
        number = float(match.group(0).replace(",", "."))
    elif isinstance(value, dict) and "value" in value:
        return coerce_quantity(value.get("value"))
    else:
        return 0.0
    if number != number or number < 0:  # NaN o negativo
        return 0.0
    return number


class ItemModel(BaseModel):
    """
    Prodotto (o ingrediente) con quantità totale in grammi o millilitri.

    Il nome accetta anche la chiave ``type`` usata dai modelli linguistici.
    """
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    category: str = Field(default="ingredient", description="Categoria (food, ingredient, material, ...)")
    name: str = Field(
        default="",
        validation_alias=AliasChoices("name", "type", "title"),
        description="Nome prodotto/ingrediente"
    )
    description: Optional[str] = Field(None, description="Descrizione libera")
    bio: bool = Field(default=False, description="Prodotto biologico")
    quantity: float = Field(default=0.0, ge=0.0, description="Quantità totale (g|ml)")
    process: Optional["ProcessModel"] = None

    @field_validator("quantity", mode="before")
    @classmethod
    def validate_quantity(cls, v: Any) -> float:
        return coerce_quantity(v)

    @field_validator("name", mode="before")
    @classmethod
    def validate_name(cls, v: Any) -> str:
        if v is None:
            return ""
        return str(v).strip()

    @field_validator("category", mode="before")
    @classmethod
    def validate_category(cls, v: Any) -> str:
        if not v:
            return "ingredient"
        return str(v).strip()

    @field_validator("bio", mode="before")
    @classmethod
    def validate_bio(cls, v: Any) -> bool:
        if isinstance(v, str):
            return v.strip().lower() in ("true", "yes", "1", "bio", "organic")
        return bool(v)


class InputModel(BaseModel):
    """Input di un processo: possiede in esclusiva il sotto-albero ``instance``."""
    model_config = ConfigDict(extra="ignore")

    instance: ItemModel
    quantity: float = Field(default=0.0, ge=0.0, description="Quantità usata (g|ml)")

    @model_validator(mode="before")
    @classmethod
    def wrap_bare_instance(cls, data: Any) -> Any:
        # Alcuni modelli restituiscono l'ingrediente come stringa o senza wrapper "instance"
        if isinstance(data, str):
            return {"instance": {"name": data}, "quantity": 0}
        if isinstance(data, dict) and "instance" not in data:
            return {"instance": data, "quantity": data.get("quantity", data.get("amount", 0))}
        if isinstance(data, dict) and isinstance(data.get("instance"), str):
            return {**data, "instance": {"name": data["instance"]}}
        return data

    @field_validator("quantity", mode="before")
    @classmethod
    def validate_quantity(cls, v: Any) -> float:
        return coerce_quantity(v)


class ProcessModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    type: str
    input_instances: List[InputModel] = Field(
        default_factory=list,
        validation_alias=AliasChoices("inputInstances", "input_instances"),
        serialization_alias="inputInstances",
    )

    @field_validator("input_instances", mode="before")
    @classmethod
    def validate_inputs(cls, v: Any) -> List[Any]:
        if not isinstance(v, list):
            return []
        return [item for item in v if item is not None]


ItemModel.model_rebuild()
InputModel.model_rebuild()
ProcessModel.model_rebuild()


class RegistryId(BaseModel):
    id: str = ""
    registry: str = ""


class SuggestionParams(BaseModel):
    """Corpo di POST /suggest/food."""
    title: Optional[str] = None
    brand: Optional[str] = None
    category: Optional[str] = None
    type: Optional[str] = None
    ids: List[RegistryId] = Field(default_factory=list)
    query: Optional[str] = None
    quantity: Optional[float] = None

    def search_query(self) -> str:
        """Segnale più forte disponibile: query esplicita, poi titolo, poi tipo."""
        for value in (self.query, self.title, self.type):
            if value and value.strip():
                return value.strip()
        return ""


class NonFoodParams(BaseModel):
    """Corpo di POST /decompose/non-food."""
    query: Optional[str] = None
    category: Optional[str] = None
    type: Optional[str] = None
    quantity: Optional[float] = None


class Attachment(BaseModel):
    name: str = "attachment"
    content: str = ""


class ExtractionRequest(BaseModel):
    """Corpo di POST /extract."""
    text: Optional[str] = None
    attachments: List[Attachment] = Field(default_factory=list)

    def is_empty(self) -> bool:
        return not (self.text and self.text.strip()) and not self.attachments


def minimal_template(name: str, category: str = "food", process_type: str = "blending") -> Dict[str, Any]:
    """Template minimo strutturalmente valido (processo vuoto, quantità zero)."""
    return {
        "category": category,
        "name": name,
        "bio": False,
        "quantity": 0,
        "process": {"type": process_type, "inputInstances": []},
    }


def item_model_to_dict(item: ItemModel) -> Dict[str, Any]:
    return item.model_dump(by_alias=True, exclude_none=True)


def validate_item_tree(data: Dict[str, Any], fallback_name: str = "", process_type: str = "blending") -> Dict[str, Any]:
    """
    Valida l'albero finale con Pydantic.

    Args:
        data: Albero grezzo (dict) prodotto dalla pipeline
        fallback_name: Nome usato se l'albero non è valido o senza nome
        process_type: Tipo processo del template di fallback

    Returns:
        Dict serializzato (chiavi camelCase per ``inputInstances``)
    """
    try:
        item = ItemModel.model_validate(data)
    except ValidationError as e:
        logger.warning(f"[VALIDATION] Albero non valido, uso template minimo: {str(e)[:200]}")
        item = ItemModel.model_validate(minimal_template(fallback_name, process_type=process_type))

    if not item.name and fallback_name:
        item.name = fallback_name
    return item_model_to_dict(item)
