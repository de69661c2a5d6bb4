"""
Provider LLM: adapter con un'unica capacità ``complete(prompt) -> str``.

ProviderChain prova gli adapter in ordine fisso (prima quello indicato dal
chiamante, poi l'ordine di default), uno alla volta: niente gare tra provider,
quindi nessuna chiamata fatturata doppia e selezione deterministica.
Ogni chiamata ha il proprio timeout; un fallimento passa al provider successivo.
"""
import asyncio
import logging
import time
from typing import Dict, List, Optional, Sequence, Tuple

import httpx
import openai

from core.config import get_config
from core.diagnostics_state import increment
from core.logger import log_json
from composition.json_utils import parse_json_lenient

logger = logging.getLogger(__name__)

PROVIDER_NAMES = ("groq", "openrouter", "gemini")


class ProviderError(Exception):
    """Risposta provider non utilizzabile (HTTP, contenuto vuoto, formato)."""


class CompletionProvider:
    name = "provider"

    def __init__(self, api_key: str, model: str, temperature: float = 0.1, timeout: float = 60.0):
        self.api_key = api_key
        self.model = model
        self.temperature = temperature
        self.timeout = timeout

    async def complete(self, prompt: str) -> str:
        raise NotImplementedError


class OpenAICompatibleProvider(CompletionProvider):
    """Provider con API chat completions compatibile OpenAI."""

    base_url = ""

    def create_client(self) -> openai.AsyncOpenAI:
        """Client per una singola chiamata: chiuso da ``complete`` a fine richiesta."""
        return openai.AsyncOpenAI(
            api_key=self.api_key,
            base_url=self.base_url,
            timeout=self.timeout,
            max_retries=0,
        )

    async def complete(self, prompt: str) -> str:
        async with self.create_client() as client:
            response = await client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": prompt}],
                temperature=self.temperature,
            )
        if not response.choices:
            raise ProviderError(f"{self.name}: nessuna choice in risposta")
        content = response.choices[0].message.content or ""
        if not content.strip():
            raise ProviderError(f"{self.name}: contenuto vuoto")
        return content


class GroqProvider(OpenAICompatibleProvider):
    name = "groq"
    base_url = "https://api.groq.com/openai/v1"


class OpenRouterProvider(OpenAICompatibleProvider):
    name = "openrouter"
    base_url = "https://openrouter.ai/api/v1"


class GeminiProvider(CompletionProvider):
    name = "gemini"
    api_root = "https://generativelanguage.googleapis.com/v1"

    def model_path(self) -> str:
        model = self.model if self.model and self.model.startswith(("gemini", "models/")) else "gemini-1.5-flash"
        return model if model.startswith("models/") else f"models/{model}"

    async def complete(self, prompt: str) -> str:
        url = f"{self.api_root}/{self.model_path()}:generateContent"
        payload = {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": {"temperature": self.temperature},
        }
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.post(url, params={"key": self.api_key}, json=payload)
        if response.status_code != 200:
            raise ProviderError(f"gemini: HTTP {response.status_code}: {response.text[:200]}")
        data = response.json()
        candidates = data.get("candidates") or []
        if not candidates:
            raise ProviderError("gemini: nessun candidate in risposta")
        parts = (candidates[0].get("content") or {}).get("parts") or []
        content = "".join(part.get("text", "") for part in parts if isinstance(part, dict))
        if not content.strip():
            raise ProviderError("gemini: contenuto vuoto")
        return content


PROVIDER_CLASSES = {
    "groq": GroqProvider,
    "openrouter": OpenRouterProvider,
    "gemini": GeminiProvider,
}


def provider_from_header(header_value: Optional[str], default: str = "groq") -> str:
    """Nome provider da header ``x-ai-provider`` (match per sottostringa)."""
    if not header_value:
        return default
    value = header_value.lower()
    if "gemini" in value:
        return "gemini"
    if "openrouter" in value:
        return "openrouter"
    return "groq"


def keys_from_headers(
    authorization: Optional[str],
    provider_header: Optional[str],
    default_provider: str = "groq",
) -> Tuple[Dict[str, str], Optional[str]]:
    """
    Chiavi transitorie dalla richiesta HTTP.

    ``Authorization: Bearer <key>`` più ``x-ai-provider`` decidono a quale
    provider va la chiave; senza header provider si usa quello di default.

    Returns:
        Tuple (transient_keys, provider_hint). Senza bearer: ({}, hint o None)
    """
    hint = provider_from_header(provider_header, default_provider) if provider_header else None
    if not authorization or not authorization.startswith("Bearer "):
        return {}, hint
    key = authorization.split(" ", 1)[1].strip()
    if not key:
        return {}, hint
    provider = hint or default_provider
    return {provider: key}, provider


class ProviderChain:
    """Lista ordinata di adapter, iterata finché uno produce un oggetto JSON."""

    def __init__(self, providers: Sequence[CompletionProvider]):
        self.providers = list(providers)

    @property
    def names(self) -> List[str]:
        return [p.name for p in self.providers]

    @classmethod
    def build(
        cls,
        keys: Dict[str, str],
        hint: Optional[str] = None,
        config=None,
    ) -> "ProviderChain":
        """
        Costruisce la catena dalle chiavi disponibili.

        Args:
            keys: provider -> api key (già unite a quelle transitorie)
            hint: Provider indicato dal chiamante, provato per primo
        """
        config = config or get_config()
        models = {
            "groq": config.groq_model,
            "openrouter": config.openrouter_model,
            "gemini": config.gemini_model,
        }
        order: List[str] = []
        for name in ([hint] if hint else []) + config.get_provider_order_list() + list(PROVIDER_NAMES):
            if name in PROVIDER_CLASSES and name not in order:
                order.append(name)

        providers = [
            PROVIDER_CLASSES[name](
                api_key=keys[name],
                model=models[name],
                temperature=config.llm_temperature,
                timeout=config.provider_timeout_sec,
            )
            for name in order
            if keys.get(name)
        ]
        return cls(providers)

    async def complete_json(self, prompt: str, stage: str = "provider") -> Tuple[Optional[dict], Optional[str]]:
        """
        Prova i provider in ordine finché uno restituisce un oggetto JSON valido.

        Returns:
            Tuple (oggetto, nome provider) oppure (None, None) se tutti falliscono
        """
        if not self.providers:
            logger.warning(f"[PROVIDER] Nessun provider configurato per {stage}")
            return None, None

        for provider in self.providers:
            start_time = time.time()
            try:
                text = await asyncio.wait_for(provider.complete(prompt), timeout=provider.timeout)
            except asyncio.TimeoutError:
                increment(f"provider.{provider.name}.timeout")
                logger.warning(f"[PROVIDER] {provider.name}: timeout dopo {provider.timeout:.0f}s")
                continue
            except Exception as e:
                increment(f"provider.{provider.name}.failure")
                logger.warning(f"[PROVIDER] {provider.name}: errore {type(e).__name__}: {e}")
                continue

            result = parse_json_lenient(text)
            elapsed_ms = (time.time() - start_time) * 1000
            if not result.ok:
                increment(f"provider.{provider.name}.unparseable")
                logger.warning(f"[PROVIDER] {provider.name}: risposta non parsabile ({result.reason})")
                continue

            increment(f"provider.{provider.name}.success")
            log_json(
                level="info",
                message=f"Provider {provider.name} ok",
                stage=stage,
                provider=provider.name,
                elapsed_ms=elapsed_ms,
            )
            return result.value, provider.name

        return None, None
