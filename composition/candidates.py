"""
Aggregatore candidati da cataloghi prodotto (OpenFoodFacts + USDA FoodData Central).

Le ricerche partono in parallelo, ognuna con il proprio timeout: un catalogo
che fallisce o scade viene escluso senza toccare l'altro e senza sollevare
eccezioni verso il chiamante.
"""
import asyncio
import logging
import time
from typing import Any, Dict, List, Optional, Sequence

import httpx

from core.config import get_config
from core.diagnostics_state import increment
from composition.types import Candidate

logger = logging.getLogger(__name__)

OFF_SEARCH_URL = "https://world.openfoodfacts.org/cgi/search.pl"
FDC_SEARCH_URL = "https://api.nal.usda.gov/fdc/v1/foods/search"


class CatalogLookup:
    """Ricerca su un singolo catalogo."""

    source = "catalog"

    def __init__(self, max_candidates: int):
        self.max_candidates = max_candidates

    async def fetch(self, client: httpx.AsyncClient, query: str) -> List[Dict[str, Any]]:
        raise NotImplementedError

    def to_candidate(self, record: Dict[str, Any]) -> Candidate:
        raise NotImplementedError

    async def search(self, client: httpx.AsyncClient, query: str) -> List[Candidate]:
        records = await self.fetch(client, query)
        candidates = [self.to_candidate(r) for r in records if isinstance(r, dict)]
        return candidates[:self.max_candidates]


class OpenFoodFactsLookup(CatalogLookup):
    source = "OpenFoodFacts"

    def __init__(self, max_candidates: int = 10, page_size: int = 12):
        super().__init__(max_candidates)
        self.page_size = page_size

    async def fetch(self, client: httpx.AsyncClient, query: str) -> List[Dict[str, Any]]:
        response = await client.get(OFF_SEARCH_URL, params={
            "search_terms": query,
            "search_simple": 1,
            "action": "process",
            "json": 1,
            "page_size": self.page_size,
        })
        response.raise_for_status()
        return response.json().get("products") or []

    def to_candidate(self, record: Dict[str, Any]) -> Candidate:
        return Candidate(
            source=self.source,
            name=record.get("product_name"),
            ingredients=record.get("ingredients_text"),
            id=record.get("code"),
            brands=record.get("brands"),
            quantity=record.get("quantity"),
        )


class FdcLookup(CatalogLookup):
    source = "USDA FDC"

    def __init__(self, api_key: str = "DEMO_KEY", max_candidates: int = 5, page_size: int = 5):
        super().__init__(max_candidates)
        self.api_key = api_key
        self.page_size = page_size

    async def fetch(self, client: httpx.AsyncClient, query: str) -> List[Dict[str, Any]]:
        response = await client.get(FDC_SEARCH_URL, params={
            "query": query,
            "dataType": "Foundation,SR Legacy,Branded",
            "pageSize": self.page_size,
            "api_key": self.api_key,
        })
        response.raise_for_status()
        return response.json().get("foods") or []

    def to_candidate(self, record: Dict[str, Any]) -> Candidate:
        return Candidate(
            source=self.source,
            name=record.get("description"),
            ingredients=record.get("ingredients"),
            id=record.get("fdcId"),
        )


def default_lookups(config=None) -> List[CatalogLookup]:
    config = config or get_config()
    return [
        OpenFoodFactsLookup(max_candidates=config.off_max_candidates, page_size=config.off_page_size),
        FdcLookup(api_key=config.fdc_api_key, max_candidates=config.fdc_max_candidates, page_size=config.fdc_page_size),
    ]


async def _bounded_search(lookup: CatalogLookup, client: httpx.AsyncClient, query: str, timeout: float) -> List[Candidate]:
    start_time = time.time()
    try:
        candidates = await asyncio.wait_for(lookup.search(client, query), timeout=timeout)
    except asyncio.TimeoutError:
        increment(f"catalog.{lookup.source}.timeout")
        logger.warning(f"[CATALOG] {lookup.source}: timeout dopo {timeout:.0f}s per '{query}'")
        raise
    except Exception as e:
        increment(f"catalog.{lookup.source}.failure")
        logger.warning(f"[CATALOG] {lookup.source}: ricerca fallita per '{query}': {e}")
        raise
    logger.debug(
        f"[CATALOG] {lookup.source}: {len(candidates)} candidati in {(time.time() - start_time) * 1000:.0f}ms"
    )
    return candidates


async def aggregate_candidates(
    query: str,
    client: Optional[httpx.AsyncClient] = None,
    lookups: Optional[Sequence[CatalogLookup]] = None,
    timeout: Optional[float] = None,
) -> List[Candidate]:
    """
    Interroga i cataloghi in parallelo e unisce i risultati riusciti.

    Args:
        query: Testo di ricerca
        client: Client httpx condiviso (se None ne crea uno per la chiamata)
        lookups: Cataloghi da interrogare (default OpenFoodFacts + FDC)
        timeout: Timeout per singolo catalogo in secondi

    Returns:
        Lista Candidate (ordine: catalogo, poi ranking del catalogo), già troncata per fonte
    """
    if not query:
        return []

    config = get_config()
    lookups = list(lookups) if lookups is not None else default_lookups(config)
    timeout = timeout if timeout is not None else config.catalog_timeout_sec

    async def _run(http_client: httpx.AsyncClient) -> List[Any]:
        return await asyncio.gather(
            *(_bounded_search(lookup, http_client, query, timeout) for lookup in lookups),
            return_exceptions=True,
        )

    if client is None:
        async with httpx.AsyncClient(timeout=timeout, follow_redirects=True) as own_client:
            results = await _run(own_client)
    else:
        results = await _run(client)

    merged: List[Candidate] = []
    for lookup, result in zip(lookups, results):
        if isinstance(result, BaseException):
            continue
        merged.extend(result)

    logger.info(f"[CATALOG] {len(merged)} candidati per '{query}' da {len(lookups)} cataloghi")
    return merged
