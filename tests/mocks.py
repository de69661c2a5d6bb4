"""
Mock utilities per test.
Provider LLM con risposte programmate e transport httpx per i cataloghi.
"""
import asyncio
import json
from typing import Any, Dict, List, Optional, Tuple, Union
from unittest.mock import AsyncMock, MagicMock

import httpx

from composition.providers import CompletionProvider, ProviderChain


class FakeProvider(CompletionProvider):
    """
    Provider con risposte programmate.

    Ogni risposta può essere:
    - str: testo restituito dal modello
    - dict: serializzato in JSON
    - Exception: sollevata
    - float: attesa in secondi (per simulare timeout)
    """

    def __init__(self, name: str, responses: List[Union[str, dict, Exception, float]], timeout: float = 5.0):
        super().__init__(api_key="test-key", model="test-model", temperature=0.0, timeout=timeout)
        self.name = name
        self.responses = list(responses)
        self.prompts: List[str] = []

    @property
    def calls(self) -> int:
        return len(self.prompts)

    async def complete(self, prompt: str) -> str:
        self.prompts.append(prompt)
        response = self.responses.pop(0) if self.responses else ""
        if isinstance(response, Exception):
            raise response
        if isinstance(response, float):
            await asyncio.sleep(response)
            return "{}"
        if isinstance(response, dict):
            return json.dumps(response)
        return response


def make_chain(*providers: CompletionProvider) -> ProviderChain:
    return ProviderChain(providers)


def create_mock_openai_client(content: Optional[str] = None, error: Optional[Exception] = None) -> MagicMock:
    """Mock ``openai.AsyncOpenAI`` con ``chat.completions.create`` asincrono."""
    client = MagicMock()
    if error is not None:
        client.chat.completions.create = AsyncMock(side_effect=error)
    else:
        client.chat.completions.create = AsyncMock(return_value=MagicMock(
            choices=[MagicMock(message=MagicMock(content=content))]
        ))
    # usato come `async with client`: __aexit__ chiude il client
    client.__aenter__.return_value = client
    client.__aexit__.return_value = False
    return client


def catalog_transport(
    off_products: Optional[List[Dict[str, Any]]] = None,
    fdc_foods: Optional[List[Dict[str, Any]]] = None,
    off_status: int = 200,
    fdc_status: int = 200,
) -> Tuple[httpx.MockTransport, List[httpx.Request]]:
    """Transport che risponde come OpenFoodFacts e USDA FDC (più le richieste ricevute)."""
    requests: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        if request.url.host == "world.openfoodfacts.org":
            return httpx.Response(off_status, json={"products": off_products or []})
        if request.url.host == "api.nal.usda.gov":
            return httpx.Response(fdc_status, json={"foods": fdc_foods or []})
        return httpx.Response(404)

    return httpx.MockTransport(handler), requests


def pages_transport(pages: Dict[str, Union[str, int]]) -> httpx.MockTransport:
    """Transport che serve HTML per URL (un int è uno status di errore)."""

    def handler(request: httpx.Request) -> httpx.Response:
        page = pages.get(str(request.url))
        if page is None:
            return httpx.Response(404, text="not found")
        if isinstance(page, int):
            return httpx.Response(page, text="error")
        return httpx.Response(200, text=page, headers={"content-type": "text/html"})

    return httpx.MockTransport(handler)
