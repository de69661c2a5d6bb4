"""
Pipeline Orchestratore - risoluzione composizione prodotto.

Flusso suggest_food:
1. Query dal segnale più forte (query, titolo, tipo); senza query → risultato vuoto
2. Contesto pagine web + candidati cataloghi (in parallelo)
3. Prompt strutturato vincolato all'enum dei tipi di processo
4. Provider LLM in ordine di preferenza, parsing JSON tollerante
5. Fallimento totale → template minimo (mai un'eccezione)
6. Input del modello vuoti/azzerati → ingredienti estratti dal contesto
7. Riconciliazione quantità
8. Normalizzazione ricorsiva dei tipi di processo
"""
import asyncio
import logging
import time
from typing import Any, Dict, List, Optional

import httpx
from rapidfuzz import fuzz

from core.config import get_config
from core.diagnostics_state import increment
from core.logger import get_correlation_id, log_json, set_request_context
from core.process_types import ProcessTypeRegistry
from composition.candidates import aggregate_candidates
from composition.context_builder import build_context
from composition.ingredient_text import extract_ingredients_from_text
from composition.process_classifier import normalize_process_types
from composition.prompts import build_extraction_prompt, build_food_prompt, build_non_food_prompt
from composition.providers import ProviderChain
from composition.quantities import infer_total_quantity, inputs_from_extracted, node_name, reconcile_tree
from composition.types import ExtractedIngredient
from composition.validation import (
    ExtractionRequest,
    NonFoodParams,
    coerce_quantity,
    SuggestionParams,
    minimal_template,
    validate_item_tree,
)

logger = logging.getLogger(__name__)

EMPTY_RESULT: Dict[str, Any] = {"suggestions": []}
CROSS_CHECK_THRESHOLD = 85
ROOT_WRAPPERS = ("product", "instance", "productInstance", "result")


def _unwrap_root(data: Dict[str, Any]) -> Dict[str, Any]:
    """Rimuove un eventuale wrapper radice ({"product": {...}}) aggiunto dal modello."""
    if len(data) == 1:
        key, value = next(iter(data.items()))
        if key in ROOT_WRAPPERS and isinstance(value, dict):
            return value
    return data


def _inputs_all_zero(inputs: List[Any]) -> bool:
    for input_instance in inputs:
        if not isinstance(input_instance, dict):
            continue
        quantity = input_instance.get("quantity")
        if coerce_quantity(quantity) > 0:
            return False
    return True


def cross_check_inputs(inputs: List[Any], extracted: List[ExtractedIngredient]) -> List[str]:
    """
    Ingredienti estratti dal contesto che non trovano corrispondenza negli input del modello.

    Solo diagnostica: l'albero non viene modificato.
    """
    model_names = [
        node_name(i.get("instance")).lower()
        for i in inputs
        if isinstance(i, dict)
    ]
    missing = []
    for ingredient in extracted:
        name = ingredient.name.lower()
        if not any(fuzz.token_set_ratio(name, candidate) >= CROSS_CHECK_THRESHOLD for candidate in model_names):
            missing.append(ingredient.name)
    return missing


def fallback_decomposition(query: str, process_type: str) -> Dict[str, Any]:
    """Scomposizione statica di esempio quando nessun provider risponde."""
    lower = query.lower()
    if "phone" in lower:
        components = [
            ("Battery (Li-ion)", "component", 50),
            ("Screen (OLED)", "component", 30),
            ("PCB & Chips", "component", 80),
            ("Aluminum Casing", "material", 40),
        ]
        return {
            "category": "non-food",
            "name": query,
            "bio": False,
            "quantity": 0,
            "process": {
                "type": process_type,
                "inputInstances": [
                    {"instance": {"name": name, "category": category}, "quantity": grams}
                    for name, category, grams in components
                ],
            },
        }
    return minimal_template(query, category="non-food", process_type=process_type)


async def suggest_food(
    params: SuggestionParams,
    registry: ProcessTypeRegistry,
    transient_keys: Optional[Dict[str, str]] = None,
    provider_hint: Optional[str] = None,
    chain: Optional[ProviderChain] = None,
    http_client: Optional[httpx.AsyncClient] = None,
    correlation_id: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Orchestratore principale: parametri descrittivi → albero prodotto riconciliato.

    Args:
        params: Parametri richiesta (titolo, marca, query, riferimenti, quantità)
        registry: Registro tipi di processo (costruito all'avvio)
        transient_keys: Chiavi provider della singola richiesta
        provider_hint: Provider da provare per primo
        chain: Catena provider già pronta (se None viene costruita da config + chiavi)
        http_client: Client httpx condiviso per scraping e cataloghi
        correlation_id: ID correlazione per logging

    Returns:
        Albero prodotto validato, oppure ``{"suggestions": []}`` se manca la query
    """
    start_time = time.time()
    set_request_context(correlation_id=correlation_id, provider=provider_hint)

    query = params.search_query()
    if not query:
        logger.info("[PIPELINE] Nessuna query (query/title/type vuoti): risultato vuoto")
        return dict(EMPTY_RESULT)

    decision = "model"
    provider_used: Optional[str] = None
    try:
        config = get_config()

        # Stage 1: contesto + candidati in parallelo
        context_text, candidates = await asyncio.gather(
            build_context(params.ids, client=http_client),
            aggregate_candidates(query, client=http_client),
        )

        extracted = extract_ingredients_from_text(context_text)
        total = infer_total_quantity(query, context_text, params.ids, params.quantity)
        logger.info(
            f"[PIPELINE] '{query}': {len(candidates)} candidati, {len(extracted)} ingredienti estratti, "
            f"totale={total}"
        )
        if extracted:
            logger.info(
                "[PIPELINE] Ingredienti: "
                + ", ".join(f"{i.name} ({i.percent if i.has_percent else 'no %'})" for i in extracted)
            )

        # Stage 2: provider LLM
        prompt = build_food_prompt(
            query=query,
            params=params.model_dump(exclude_none=True),
            context_text=context_text,
            candidates=candidates,
            process_types=registry.types,
        )
        if chain is None:
            chain = ProviderChain.build(config.provider_keys(transient_keys), hint=provider_hint, config=config)
        result, provider_used = await chain.complete_json(prompt, stage="suggest_food")

        if result is None:
            decision = "template"
            increment("pipeline.template_fallback")
            logger.warning(f"[PIPELINE] Tutti i provider falliti ({chain.names}): uso template minimo")
            item = minimal_template(query, category="food", process_type=registry.fallback)
        else:
            item = _unwrap_root(result)

        if not node_name(item):
            item["name"] = query
        item["quantity"] = total or 0

        process = item.get("process")
        if not isinstance(process, dict):
            process = {"type": registry.fallback, "inputInstances": []}
            item["process"] = process
        inputs = process.get("inputInstances")
        if not isinstance(inputs, list):
            inputs = []
        for input_instance in inputs:
            if isinstance(input_instance, dict) and "quantity" in input_instance:
                input_instance["quantity"] = coerce_quantity(input_instance["quantity"])
        process["inputInstances"] = inputs

        inputs_absolute = False
        # Stage 3: ingredienti estratti come percorso primario o come controllo incrociato
        if extracted and (not inputs or _inputs_all_zero(inputs)):
            logger.info(
                f"[PIPELINE] Uso ingredienti estratti (modello: {len(inputs)} input, tutti zero: {bool(inputs)})"
            )
            if decision == "model":
                decision = "extracted"
            process["inputInstances"] = inputs_from_extracted(extracted, total)
            inputs_absolute = True
            if not item.get("description"):
                names = ", ".join(i.name for i in extracted)
                item["description"] = f"Ingredients extracted from source: {names}"
        elif extracted:
            missing = cross_check_inputs(inputs, extracted)
            if missing:
                increment("pipeline.cross_check_missing", len(missing))
                logger.info(f"[PIPELINE] Controllo incrociato: {len(missing)} ingredienti non presenti nel modello: {missing}")

        # Stage 4: quantità, poi tipi di processo
        reconcile_tree(item, total, query, absolute=inputs_absolute)
        normalize_process_types(item, registry)

        tree = validate_item_tree(item, fallback_name=query, process_type=registry.fallback)

        elapsed_ms = (time.time() - start_time) * 1000
        log_json(
            level="info",
            message=f"suggest_food completed: decision={decision}",
            stage="suggest_food",
            decision=decision,
            elapsed_ms=elapsed_ms,
            query=query,
            provider=provider_used,
            candidates=len(candidates),
            extracted=len(extracted),
            total_quantity=total,
            inputs=len(tree.get("process", {}).get("inputInstances", [])),
        )
        return tree

    except Exception as e:
        elapsed_ms = (time.time() - start_time) * 1000
        increment("pipeline.unexpected_error")
        logger.error(f"[PIPELINE] Errore inatteso per '{query}': {e}", exc_info=True)
        log_json(
            level="error",
            message=f"suggest_food failed: {str(e)}",
            stage="suggest_food",
            decision="template",
            elapsed_ms=elapsed_ms,
            query=query,
        )
        template = minimal_template(query, category="food", process_type=registry.fallback)
        return validate_item_tree(template, fallback_name=query, process_type=registry.fallback)


async def decompose_non_food(
    params: NonFoodParams,
    registry: ProcessTypeRegistry,
    transient_keys: Optional[Dict[str, str]] = None,
    provider_hint: Optional[str] = None,
    chain: Optional[ProviderChain] = None,
    correlation_id: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Scomposizione BOM di un prodotto non alimentare.

    Stessa catena provider e stessa normalizzazione dei tipi di processo di suggest_food.
    """
    start_time = time.time()
    set_request_context(correlation_id=correlation_id, provider=provider_hint)
    query = (params.query or "").strip() or "unknown product"
    decision = "model"

    try:
        config = get_config()
        if chain is None:
            chain = ProviderChain.build(config.provider_keys(transient_keys), hint=provider_hint, config=config)
        result, provider_used = await chain.complete_json(
            build_non_food_prompt(query, registry.types), stage="decompose_non_food"
        )

        if result is None:
            decision = "fallback"
            increment("pipeline.template_fallback")
            item = fallback_decomposition(query, registry.fallback)
        else:
            item = _unwrap_root(result)

        if not node_name(item):
            item["name"] = query
        total = infer_total_quantity(query, None, None, params.quantity)
        item["quantity"] = total or 0

        reconcile_tree(item, total, query)
        normalize_process_types(item, registry)
        tree = validate_item_tree(item, fallback_name=query, process_type=registry.fallback)

        log_json(
            level="info",
            message=f"decompose_non_food completed: decision={decision}",
            stage="decompose_non_food",
            decision=decision,
            elapsed_ms=(time.time() - start_time) * 1000,
            query=query,
            provider=provider_used,
        )
        return tree

    except Exception as e:
        increment("pipeline.unexpected_error")
        logger.error(f"[PIPELINE] Errore scomposizione non-food per '{query}': {e}", exc_info=True)
        return validate_item_tree(
            minimal_template(query, category="non-food", process_type=registry.fallback),
            fallback_name=query,
            process_type=registry.fallback,
        )


def heuristic_extraction(request: ExtractionRequest, error: str) -> Dict[str, Any]:
    """Estrazione senza LLM: keyword ingredienti + totale dal testo."""
    text = request.text or ""
    full_text = "\n".join([text] + [a.content for a in request.attachments])
    extracted = extract_ingredients_from_text(full_text)
    total = infer_total_quantity(text, full_text)

    first_line = next((line.strip() for line in text.splitlines() if line.strip()), "")
    name = first_line[:80] or (request.attachments[0].name if request.attachments else "")

    return {
        "summary": f"Heuristic extraction: found {len(extracted)} ingredients",
        "populated": {
            "instance": {
                "name": name,
                "description": None,
                "quantity": {"value": total, "unit": "g"} if total else None,
            },
            "process": {
                "name": f"Production of {name}" if name else "Production",
                "inputInstances": [
                    {
                        "name": ingredient.name,
                        "amount": {"value": ingredient.percent, "unit": "%"} if ingredient.has_percent else None,
                        "description": None,
                    }
                    for ingredient in extracted
                ],
            },
        },
        "error": error,
    }


async def run_extraction(
    request: ExtractionRequest,
    transient_keys: Optional[Dict[str, str]] = None,
    provider_hint: Optional[str] = None,
    chain: Optional[ProviderChain] = None,
    correlation_id: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Estrazione strutturata prodotto + processo da testo libero e allegati.

    Returns:
        ``{summary, populated: {instance, process}}``; senza provider utili il
        risultato euristico contiene anche ``error``
    """
    set_request_context(correlation_id=correlation_id, provider=provider_hint)
    config = get_config()
    if chain is None:
        chain = ProviderChain.build(config.provider_keys(transient_keys), hint=provider_hint, config=config)

    prompt = build_extraction_prompt(request.text or "", [a.model_dump() for a in request.attachments])
    result, provider_used = await chain.complete_json(prompt, stage="extract")

    if result is None or not isinstance(result.get("populated"), dict):
        increment("pipeline.template_fallback")
        logger.warning(
            f"[PIPELINE] Estrazione LLM non disponibile (correlation_id={get_correlation_id()}), "
            f"uso estrazione euristica"
        )
        return heuristic_extraction(request, "No AI provider available or all failed")

    populated = result["populated"]
    populated.setdefault("instance", {})
    populated.setdefault("process", {"inputInstances": []})
    result.setdefault("summary", "")
    logger.info(f"[PIPELINE] Estrazione completata con {provider_used}")
    return result
