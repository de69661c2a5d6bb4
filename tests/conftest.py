"""
Configurazione pytest e fixture comuni.
"""
import pytest

import core.config as config_module
from core.config import ComposerConfig
from core.diagnostics_state import reset
from core.process_types import build_registry


@pytest.fixture(autouse=True)
def test_config(monkeypatch):
    """Configurazione isolata: nessuna chiave provider da ambiente o .env."""
    config = ComposerConfig(
        _env_file=None,
        groq_api_key="",
        openrouter_api_key="",
        gemini_api_key="",
        provider_order="groq,openrouter,gemini",
        provider_timeout_sec=5.0,
        catalog_timeout_sec=5.0,
        scrape_timeout_sec=5.0,
    )
    monkeypatch.setattr(config_module, "_config", config)
    yield config


@pytest.fixture(autouse=True)
def reset_counters():
    """Contatori diagnostici azzerati per ogni test."""
    reset()
    yield
    reset()


@pytest.fixture
def registry():
    """Registro tipi di processo di default."""
    return build_registry()


@pytest.fixture
def bread_context():
    """Contesto scraping con lista ingredienti percentuale."""
    return (
        "\n--- Context from https://shop.example/bread ---\n"
        "JSON-LD: \n"
        "Text: Ingredients: Flour 50%, Water 30%, Salt\n"
        "----------------\n"
    )
