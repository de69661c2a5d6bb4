"""
Test context builder (scraping pagine di riferimento).
"""
import httpx
import pytest
from bs4 import BeautifulSoup

from core.diagnostics_state import get_snapshot
from composition.context_builder import (
    build_context,
    extract_body_window,
    extract_json_ld,
    page_context,
    web_page_urls,
)
from tests.mocks import pages_transport

RECIPE_PAGE = """
<html><head>
<script type="application/ld+json">{"@context": "https://schema.org", "@type": "Recipe",
 "name": "Bread", "recipeIngredient": ["500 g flour", "300 ml water", "10 g salt"]}</script>
<style>.x { color: red }</style>
</head>
<body><nav>Home | Shop</nav><p>Our best loaf.</p>
<p>Ingredients: Flour 50%, Water 30%, Salt</p>
<script>var tracking = 1;</script></body></html>
"""


class TestUrls:

    def test_only_url_registry_with_http(self):
        ids = [
            {"id": "https://shop.example/bread", "registry": "url"},
            {"id": "8001234567890", "registry": "ean"},
            {"id": "ftp://files.example/x", "registry": "url"},
            {"id": "http://old.example/page", "registry": "url"},
        ]
        assert web_page_urls(ids) == ["https://shop.example/bread", "http://old.example/page"]

    def test_none(self):
        assert web_page_urls(None) == []


class TestJsonLd:

    def test_recipe_ingredient(self):
        soup = BeautifulSoup(RECIPE_PAGE, "html.parser")
        assert extract_json_ld(soup) == '["500 g flour", "300 ml water", "10 g salt"]'

    def test_graph_product_node(self):
        html = (
            '<script type="application/ld+json">{"@graph": [{"@type": "WebPage"}, '
            '{"@type": "Recipe", "recipeIngredient": ["oats"]}]}</script>'
        )
        assert extract_json_ld(BeautifulSoup(html, "html.parser")) == '["oats"]'

    def test_invalid_json_ignored(self):
        html = '<script type="application/ld+json">{broken</script>'
        assert extract_json_ld(BeautifulSoup(html, "html.parser")) == ""


class TestBodyWindow:

    def test_keyword_window(self, test_config):
        text = "x" * 5000 + " Ingredients: Oats, Honey " + "y" * 5000
        window = extract_body_window(text, test_config)
        assert window.startswith("x" * 50)
        assert "Ingredients: Oats, Honey" in window
        assert len(window) == test_config.scrape_keyword_window

    def test_tail_without_keyword(self, test_config):
        text = "a" * 10000 + "END"
        window = extract_body_window(text, test_config)
        assert window.endswith("END")
        assert len(window) == test_config.scrape_tail_window


class TestPageContext:

    def test_block_format(self, test_config):
        block = page_context("https://shop.example/bread", RECIPE_PAGE, test_config)
        assert block.startswith("\n--- Context from https://shop.example/bread ---\n")
        assert "JSON-LD: [\"500 g flour\"" in block
        assert "Ingredients: Flour 50%, Water 30%, Salt" in block
        assert "tracking" not in block
        assert "color: red" not in block
        assert block.endswith("----------------\n")

    @pytest.mark.asyncio
    async def test_failed_page_is_skipped(self):
        transport = pages_transport({
            "https://shop.example/bread": RECIPE_PAGE,
            "https://shop.example/broken": 500,
        })
        ids = [
            {"id": "https://shop.example/bread", "registry": "url"},
            {"id": "https://shop.example/broken", "registry": "url"},
        ]
        async with httpx.AsyncClient(transport=transport) as client:
            context = await build_context(ids, client=client)

        assert "Context from https://shop.example/bread" in context
        assert "broken" not in context
        assert get_snapshot().get("context.fetch_failure") == 1

    @pytest.mark.asyncio
    async def test_no_urls_no_requests(self):
        def handler(request):
            raise AssertionError("nessuna richiesta attesa")

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            assert await build_context([{"id": "123", "registry": "ean"}], client=client) == ""
