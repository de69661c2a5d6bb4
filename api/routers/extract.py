"""
Router per estrazione strutturata (POST /extract).
"""
import logging
import uuid
from typing import Optional

from fastapi import APIRouter, Header, HTTPException

from core.config import get_config
from composition.pipeline import run_extraction
from composition.providers import keys_from_headers
from composition.validation import ExtractionRequest

logger = logging.getLogger(__name__)

router = APIRouter(tags=["extract"])


@router.post("/extract")
async def extract_endpoint(
    request: ExtractionRequest,
    authorization: Optional[str] = Header(None),
    x_ai_provider: Optional[str] = Header(None),
):
    """Estrae prodotto, quantità e input di processo da testo libero e allegati."""
    if request.is_empty():
        raise HTTPException(status_code=400, detail="No content provided")

    correlation_id = str(uuid.uuid4())
    transient_keys, hint = keys_from_headers(authorization, x_ai_provider, get_config().default_provider)
    try:
        return await run_extraction(
            request,
            transient_keys=transient_keys,
            provider_hint=hint,
            correlation_id=correlation_id,
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"[EXTRACT] Errore estrazione (correlation_id={correlation_id}): {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Internal server error: {str(e)}")
