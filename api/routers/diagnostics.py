"""Router diagnostica: contatori in memoria di provider, cataloghi e pipeline."""
import logging

from fastapi import APIRouter, Query

from core.diagnostics_state import get_prefixed, get_snapshot

logger = logging.getLogger(__name__)


router = APIRouter(prefix="/api/diagnostics", tags=["diagnostics"])


@router.get("/counters")
async def get_counters(prefix: str = Query("", description="Filtra i contatori per prefisso (es. 'provider.')")):
    """Snapshot dei contatori di processo."""
    counters = get_prefixed(prefix) if prefix else get_snapshot()
    return {
        "status": "ok",
        "prefix": prefix or None,
        "counters": counters,
    }
