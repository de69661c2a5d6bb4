"""
Riconciliazione quantità (grammi/millilitri) sull'albero prodotto.

Passi:
1. Inferenza del totale dal testo (l → ml → kg → g), solo se manca una quantità esplicita
2. Ingredienti estratti: percentuali → grammi, residuo diviso tra quelli senza percentuale
3. Rilevamento percentuali negli input del modello e conversione in assoluto
4. Backfill del residuo su acqua/filler se il prodotto è liquido

Ogni passo è idempotente: rieseguirlo su un albero già riconciliato non cambia nulla
(una lista che somma già al totale è considerata assoluta).

Nota: il rilevamento percentuali (somma <= 110, ogni valore in [0, 100]) è
un'euristica. Una ricetta con pochi grammi per ingrediente (es. un mix di
spezie sotto i 100 g) viene letta come percentuali: falso positivo noto e
accettato, da non correggere senza una decisione di prodotto.
"""
import logging
import math
import re
from typing import Any, Dict, Iterable, List, Optional, Sequence

from composition.types import ExtractedIngredient

logger = logging.getLogger(__name__)

PERCENT_SUM_LIMIT = 110.0
PERCENT_VALUE_LIMIT = 100.0

WATER_KEYWORDS = ("water", "víz", "wasser", "acqua")
LIQUID_KEYWORDS = (
    "water", "liquid", "drink", "beverage", "soup", "broth", "juice",
    "cleaner", "detergent", "vinegar", "spray",
)

_NUMBER = r"(\d+(?:[.,]\d+)?)"
# (regex, moltiplicatore) in ordine di priorità
TOTAL_PATTERNS = (
    (re.compile(_NUMBER + r"\s*(?:l|liters?|litres?)\b"), 1000.0),
    (re.compile(_NUMBER + r"\s*ml\b"), 1.0),
    (re.compile(_NUMBER + r"\s*kg\b"), 1000.0),
    (re.compile(_NUMBER + r"\s*g\b"), 1.0),
)
ONE_LITER_HINTS = ("1l", "1 liter", "1 litre")


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _to_float(value: Any) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if number != number:
        return 0.0
    return number


def node_name(instance: Any) -> str:
    """Nome di un nodo: ``name``, altrimenti ``type`` (convenzione dei modelli), altrimenti ``title``."""
    if not isinstance(instance, dict):
        return str(instance or "")
    for key in ("name", "type", "title"):
        value = instance.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return ""


def infer_total_quantity(
    query: Optional[str],
    context_text: Optional[str] = None,
    ids: Optional[Iterable[Any]] = None,
    explicit_quantity: Optional[float] = None,
) -> Optional[float]:
    """
    Inferisce la quantità totale del prodotto.

    Una quantità esplicita positiva vince sempre. Altrimenti cerca nel testo
    (query, poi contesto, poi identificativi) litri, ml, kg, g in quest'ordine.

    Returns:
        Totale in g|ml, oppure None se non c'è base testuale (mai un default inventato)
    """
    if isinstance(explicit_quantity, (int, float)) and not isinstance(explicit_quantity, bool) and explicit_quantity > 0:
        return explicit_quantity

    id_strings = []
    for ref in ids or []:
        value = ref.get("id") if isinstance(ref, dict) else getattr(ref, "id", ref)
        id_strings.append(str(value or ""))

    lower = " ".join([query or "", context_text or "", *id_strings]).lower()

    for pattern, multiplier in TOTAL_PATTERNS:
        match = pattern.search(lower)
        if match:
            return round_half_up(float(match.group(1).replace(",", ".")) * multiplier)

    if any(hint in lower for hint in ONE_LITER_HINTS):
        return 1000
    return None


def looks_like_percentages(quantities: Sequence[float]) -> bool:
    """Percentuali se lista non vuota, ogni valore in [0, 100] e somma <= 110."""
    if not quantities:
        return False
    if any(q < 0 or q > PERCENT_VALUE_LIMIT for q in quantities):
        return False
    return sum(quantities) <= PERCENT_SUM_LIMIT


def is_water_like(input_instance: Any) -> bool:
    if not isinstance(input_instance, dict):
        return False
    name = node_name(input_instance.get("instance")).lower()
    return any(keyword in name for keyword in WATER_KEYWORDS)


def is_liquid_like(text: str) -> bool:
    lower = (text or "").lower()
    return any(keyword in lower for keyword in LIQUID_KEYWORDS)


def find_water_input(inputs: List[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    for input_instance in inputs:
        if is_water_like(input_instance):
            return input_instance
    return None


def sum_quantities(inputs: Iterable[Dict[str, Any]]) -> float:
    return sum(_to_float(i.get("quantity")) for i in inputs if isinstance(i, dict))


def convert_percentages_to_absolute(inputs: List[Dict[str, Any]], total: Optional[float]) -> bool:
    """
    Converte in assoluto gli input che sembrano percentuali.

    Lo scarto di arrotondamento (o la quota mancante) va all'input acqua, se presente.

    Returns:
        True se la conversione è stata applicata
    """
    if not total or not inputs:
        return False

    quantities = [_to_float(i.get("quantity")) for i in inputs]
    if sum(quantities) == 0 or not looks_like_percentages(quantities):
        return False
    # già in assoluto (es. seconda passata su totale <= 110)
    if sum(quantities) == total:
        return False

    converted_sum = 0
    for input_instance, percent in zip(inputs, quantities):
        grams = round_half_up(total * percent / 100)
        input_instance["quantity"] = grams
        converted_sum += grams

    water = find_water_input(inputs)
    if water is not None and converted_sum != total:
        adjusted = _to_float(water.get("quantity")) + (total - converted_sum)
        water["quantity"] = max(0, adjusted)

    logger.info(
        f"[QUANTITY] Percentuali convertite su totale {total}: "
        f"{sum(quantities):.1f}% → {sum_quantities(inputs):.0f}"
    )
    return True


def distribute_residual(inputs: List[Dict[str, Any]], total: Optional[float], open_indices: Sequence[int]) -> int:
    """
    Divide in parti uguali (arrotondate per difetto) la massa non ancora attribuita.

    Args:
        inputs: Input correnti (le quantità già presenti contano come attribuite)
        total: Totale del prodotto
        open_indices: Indici degli input senza quantità propria

    Returns:
        Quantità assegnata a ciascun input aperto (0 se nulla da distribuire)
    """
    if not total or not open_indices:
        return 0
    available = total - sum_quantities(inputs)
    if available <= 0:
        return 0
    per_ingredient = int(math.floor(available / len(open_indices)))
    for index in open_indices:
        inputs[index]["quantity"] = per_ingredient
    logger.info(
        f"[QUANTITY] Distribuiti {available:.0f} tra {len(open_indices)} ingredienti (~{per_ingredient} ciascuno)"
    )
    return per_ingredient


def inputs_from_extracted(extracted: Sequence[ExtractedIngredient], total: Optional[float]) -> List[Dict[str, Any]]:
    """
    Costruisce gli input di processo dalla lista ingredienti estratta dal testo.

    - con percentuale e totale noto: grammi = round(totale * % / 100)
    - senza percentuale: quota uguale del residuo (se le percentuali note sono < 100)
    - residuo finale all'acqua, se presente
    Senza totale noto tutte le quantità restano 0.
    """
    inputs: List[Dict[str, Any]] = []
    open_indices: List[int] = []
    known_percent_total = 0.0
    with_percent = 0

    for index, ingredient in enumerate(extracted):
        grams = 0
        if ingredient.has_percent:
            with_percent += 1
            known_percent_total += ingredient.percent
            if total:
                grams = round_half_up(total * ingredient.percent / 100)
        else:
            open_indices.append(index)
        inputs.append({
            "instance": {"name": ingredient.name, "category": "ingredient"},
            "quantity": grams,
        })

    if not total:
        return inputs

    if open_indices and known_percent_total < 100:
        distribute_residual(inputs, total, open_indices)

    if with_percent and 0 < known_percent_total < 100:
        remainder = max(0, total - sum_quantities(inputs))
        water = find_water_input(inputs)
        if water is not None and remainder > 0:
            logger.info(f"[QUANTITY] Residuo {remainder:.0f} aggiunto all'acqua")
            water["quantity"] = _to_float(water.get("quantity")) + remainder

    return inputs


def backfill_liquid_filler(inputs: List[Dict[str, Any]], total: Optional[float], text: str) -> float:
    """
    Se il prodotto è liquido e la somma input è sotto il totale, aggiunge la differenza all'acqua.

    Se nessun input è acqua ne aggiunge uno sintetico "Water".

    Returns:
        Quantità aggiunta (0 se nessun backfill)
    """
    if not total:
        return 0
    remaining = max(0, total - sum_quantities(inputs))
    if remaining <= 0 or not is_liquid_like(text):
        return 0

    water = find_water_input(inputs)
    if water is not None:
        water["quantity"] = _to_float(water.get("quantity")) + remaining
    else:
        inputs.append({
            "instance": {"name": "Water", "category": "ingredient"},
            "quantity": remaining,
        })
    logger.info(f"[QUANTITY] Backfill liquido: +{remaining:.0f} acqua")
    return remaining


def reconcile_inputs(
    inputs: List[Dict[str, Any]],
    total: Optional[float],
    text: str,
    absolute: bool = False,
) -> None:
    """Percentuali → assoluto (saltato se ``absolute``), poi backfill liquido. In place."""
    if not absolute:
        convert_percentages_to_absolute(inputs, total)
    backfill_liquid_filler(inputs, total, text)


def reconcile_tree(item: Dict[str, Any], total: Optional[float], text: str = "", absolute: bool = False) -> None:
    """
    Riconcilia un nodo e, ricorsivamente, gli input che hanno un proprio processo.

    Per un input annidato il totale è la quantità che il padre gli assegna.

    Args:
        item: Nodo prodotto (dict), modificato in place
        total: Totale noto del nodo (None se sconosciuto)
        text: Testo usato per l'euristica liquido (nome, descrizione, query)
        absolute: Input del nodo già in grammi (ingredienti estratti), niente conversione
    """
    if not isinstance(item, dict):
        return
    process = item.get("process")
    if not isinstance(process, dict):
        return
    inputs = process.get("inputInstances")
    if not isinstance(inputs, list):
        return
    inputs[:] = [i for i in inputs if isinstance(i, dict)]

    node_text = " ".join(filter(None, [node_name(item), str(item.get("description") or ""), text]))
    reconcile_inputs(inputs, total, node_text, absolute=absolute)

    for input_instance in inputs:
        nested = input_instance.get("instance")
        if not isinstance(nested, dict) or not isinstance(nested.get("process"), dict):
            continue
        assigned = _to_float(input_instance.get("quantity"))
        if assigned:
            nested["quantity"] = assigned
        nested_total = assigned or _to_float(nested.get("quantity")) or None
        reconcile_tree(nested, nested_total)
