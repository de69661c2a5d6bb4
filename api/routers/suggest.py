"""
Router per suggerimenti composizione prodotto.

Endpoint:
- POST /suggest/food: albero prodotto alimentare (ingredienti + processo)
- POST /decompose/non-food: distinta base prodotto non alimentare

Chiave provider per singola richiesta: ``Authorization: Bearer <key>`` con
``x-ai-provider`` che indica a quale provider appartiene.
"""
import logging
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request

from core.config import get_config
from core.process_types import ProcessTypeRegistry, registry_from_config
from composition.pipeline import decompose_non_food, suggest_food
from composition.providers import keys_from_headers
from composition.validation import NonFoodParams, SuggestionParams

logger = logging.getLogger(__name__)

router = APIRouter(tags=["composition"])


def get_process_types(request: Request) -> ProcessTypeRegistry:
    """Registro tipi di processo costruito allo startup."""
    registry = getattr(request.app.state, "process_types", None)
    if registry is None:
        registry = registry_from_config(get_config())
        request.app.state.process_types = registry
    return registry


@router.post("/suggest/food")
async def suggest_food_endpoint(
    params: SuggestionParams,
    registry: ProcessTypeRegistry = Depends(get_process_types),
    authorization: Optional[str] = Header(None),
    x_ai_provider: Optional[str] = Header(None),
):
    """Risolve la composizione di un prodotto alimentare."""
    correlation_id = str(uuid.uuid4())
    transient_keys, hint = keys_from_headers(authorization, x_ai_provider, get_config().default_provider)
    try:
        return await suggest_food(
            params,
            registry,
            transient_keys=transient_keys,
            provider_hint=hint,
            correlation_id=correlation_id,
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"[SUGGEST] Errore suggest/food (correlation_id={correlation_id}): {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Internal server error: {str(e)}")


@router.post("/decompose/non-food")
async def decompose_non_food_endpoint(
    params: NonFoodParams,
    registry: ProcessTypeRegistry = Depends(get_process_types),
    authorization: Optional[str] = Header(None),
    x_ai_provider: Optional[str] = Header(None),
):
    """Scompone un prodotto non alimentare in materiali e componenti."""
    correlation_id = str(uuid.uuid4())
    transient_keys, hint = keys_from_headers(authorization, x_ai_provider, get_config().default_provider)
    try:
        return await decompose_non_food(
            params,
            registry,
            transient_keys=transient_keys,
            provider_hint=hint,
            correlation_id=correlation_id,
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"[SUGGEST] Errore decompose/non-food (correlation_id={correlation_id}): {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Internal server error: {str(e)}")
