"""
Context builder: scarica le pagine di riferimento e ne estrae testo e JSON-LD.

Solo I/O, nessuna decisione: ogni pagina contribuisce un blocco delimitato
al contesto aggregato; una pagina che fallisce viene semplicemente omessa.
"""
import asyncio
import json
import logging
import re
from typing import Any, Iterable, List, Optional

import httpx
from bs4 import BeautifulSoup

from core.config import get_config
from core.diagnostics_state import increment
from composition.ingredient_text import find_keyword

logger = logging.getLogger(__name__)

JSON_LD_MAX_CHARS = 3000
_WHITESPACE_RE = re.compile(r"\s+")


def web_page_urls(ids: Optional[Iterable[Any]]) -> List[str]:
    """URL dei riferimenti di tipo pagina web (registry 'url', id http/https)."""
    urls = []
    for ref in ids or []:
        registry = ref.get("registry") if isinstance(ref, dict) else getattr(ref, "registry", "")
        value = ref.get("id") if isinstance(ref, dict) else getattr(ref, "id", "")
        if registry == "url" and isinstance(value, str) and value.startswith("http"):
            urls.append(value)
    return urls


def _json_ld_fragment(data: Any) -> Optional[str]:
    if isinstance(data, list):
        parts = [_json_ld_fragment(item) for item in data]
        joined = "\n".join(p for p in parts if p)
        return joined or None
    if not isinstance(data, dict):
        return None
    if data.get("recipeIngredient"):
        return json.dumps(data["recipeIngredient"], ensure_ascii=False)
    if isinstance(data.get("@graph"), list):
        for node in data["@graph"]:
            if isinstance(node, dict) and node.get("@type") in ("Recipe", "Product") and node.get("recipeIngredient"):
                return json.dumps(node["recipeIngredient"], ensure_ascii=False)
        return None
    serialized = json.dumps(data, ensure_ascii=False)
    if len(serialized) < JSON_LD_MAX_CHARS:
        return serialized
    return None


def extract_json_ld(soup: BeautifulSoup) -> str:
    """Dati strutturati rilevanti dagli script application/ld+json."""
    fragments = []
    for script in soup.find_all("script", attrs={"type": "application/ld+json"}):
        raw = script.string or script.get_text() or ""
        try:
            data = json.loads(raw)
        except (json.JSONDecodeError, ValueError):
            continue
        fragment = _json_ld_fragment(data)
        if fragment:
            fragments.append(fragment)
    return "\n".join(fragments)


def extract_body_window(body_text: str, config=None) -> str:
    """
    Finestra di testo del body.

    Con keyword ingredienti: da poco prima dell'ultima occorrenza, per una finestra fissa.
    Senza keyword: gli ultimi caratteri della pagina.
    """
    config = config or get_config()
    clean = _WHITESPACE_RE.sub(" ", body_text).strip()
    found = find_keyword(clean)
    if found is None:
        return clean[max(0, len(clean) - config.scrape_tail_window):]

    keyword, index = found
    start = max(0, index - config.scrape_keyword_lead)
    logger.info(f"[CONTEXT] Keyword ingredienti '{keyword}' all'indice {index}")
    return clean[start:start + config.scrape_keyword_window]


def page_context(url: str, html: str, config=None) -> str:
    """Blocco di contesto per una pagina già scaricata."""
    soup = BeautifulSoup(html, "html.parser")
    json_ld = extract_json_ld(soup)
    for tag in soup(["script", "style", "noscript"]):
        tag.decompose()
    body = soup.body or soup
    text_extract = extract_body_window(body.get_text(" "), config)
    return (
        f"\n--- Context from {url} ---\n"
        f"JSON-LD: {json_ld}\n"
        f"Text: {text_extract}\n"
        f"----------------\n"
    )


async def fetch_page_context(client: httpx.AsyncClient, url: str, config=None) -> str:
    logger.info(f"[CONTEXT] Scraping {url}")
    response = await client.get(url)
    response.raise_for_status()
    return page_context(url, response.text, config)


async def build_context(
    ids: Optional[Iterable[Any]],
    client: Optional[httpx.AsyncClient] = None,
) -> str:
    """
    Costruisce il contesto aggregato dai riferimenti di tipo URL.

    Args:
        ids: Riferimenti ``{id, registry}``
        client: Client httpx condiviso (se None ne crea uno)

    Returns:
        Stringa di contesto (vuota se nessuna pagina è stata letta)
    """
    urls = web_page_urls(ids)
    if not urls:
        return ""

    config = get_config()

    async def _run(http_client: httpx.AsyncClient) -> List[Any]:
        return await asyncio.gather(
            *(fetch_page_context(http_client, url, config) for url in urls),
            return_exceptions=True,
        )

    if client is None:
        async with httpx.AsyncClient(
            timeout=config.scrape_timeout_sec,
            headers={"User-Agent": config.scrape_user_agent},
            follow_redirects=True,
        ) as own_client:
            results = await _run(own_client)
    else:
        results = await _run(client)

    blocks = []
    for url, result in zip(urls, results):
        if isinstance(result, BaseException):
            increment("context.fetch_failure")
            logger.error(f"[CONTEXT] Scraping fallito per {url}: {result}")
            continue
        blocks.append(result)

    return "".join(blocks)
