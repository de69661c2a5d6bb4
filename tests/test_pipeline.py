"""
Test orchestratore: suggest_food, decompose_non_food, run_extraction.

Scraping e cataloghi sono sostituiti con AsyncMock, i provider con FakeProvider.
"""
from unittest.mock import AsyncMock, patch

import pytest

from core.diagnostics_state import get_snapshot
from composition.pipeline import (
    cross_check_inputs,
    decompose_non_food,
    fallback_decomposition,
    run_extraction,
    suggest_food,
)
from composition.providers import ProviderError
from composition.types import Candidate, ExtractedIngredient
from composition.validation import ExtractionRequest, NonFoodParams, SuggestionParams
from tests.mocks import FakeProvider, make_chain


def _inputs(tree):
    return [(i["instance"]["name"], i["quantity"]) for i in tree["process"]["inputInstances"]]


@pytest.fixture
def no_io():
    """Contesto vuoto e nessun candidato."""
    with patch("composition.pipeline.build_context", new=AsyncMock(return_value="")) as context, \
         patch("composition.pipeline.aggregate_candidates", new=AsyncMock(return_value=[])) as candidates:
        yield context, candidates


class TestSuggestFood:

    @pytest.mark.asyncio
    async def test_empty_query_makes_no_calls(self, registry, no_io):
        context, candidates = no_io
        provider = FakeProvider("groq", [{"name": "never"}])

        result = await suggest_food(SuggestionParams(brand="Acme"), registry, chain=make_chain(provider))

        assert result == {"suggestions": []}
        assert provider.calls == 0
        context.assert_not_awaited()
        candidates.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_all_providers_fail_returns_template(self, registry, no_io):
        chain = make_chain(FakeProvider("groq", [ProviderError("down")]), FakeProvider("gemini", ["no json"]))

        result = await suggest_food(SuggestionParams(query="Chocolate cake"), registry, chain=chain)

        assert result == {
            "category": "food",
            "name": "Chocolate cake",
            "bio": False,
            "quantity": 0.0,
            "process": {"type": "blending", "inputInstances": []},
        }
        assert get_snapshot().get("pipeline.template_fallback") == 1

    @pytest.mark.asyncio
    async def test_no_providers_configured_returns_template(self, registry, no_io):
        result = await suggest_food(SuggestionParams(title="Muesli"), registry)
        assert result["name"] == "Muesli"
        assert result["process"] == {"type": "blending", "inputInstances": []}

    @pytest.mark.asyncio
    async def test_extracted_ingredients_replace_empty_model_inputs(self, registry, bread_context):
        model_output = {"category": "food", "name": "Bread", "process": {"type": "Baking", "inputInstances": []}}
        chain = make_chain(FakeProvider("groq", [model_output]))
        params = SuggestionParams(
            query="Bread 1 kg",
            ids=[{"id": "https://shop.example/bread", "registry": "url"}],
        )

        with patch("composition.pipeline.build_context", new=AsyncMock(return_value=bread_context)), \
             patch("composition.pipeline.aggregate_candidates", new=AsyncMock(return_value=[])):
            result = await suggest_food(params, registry, chain=chain)

        assert result["quantity"] == 1000
        assert result["process"]["type"] == "cooking"
        assert _inputs(result) == [("Flour", 500), ("Water", 300), ("Salt", 200)]
        assert result["description"] == "Ingredients extracted from source: Flour, Water, Salt"

    @pytest.mark.asyncio
    async def test_extracted_grams_not_rescaled_on_small_total(self, registry, bread_context):
        model_output = {"name": "Dough", "process": {"type": "mixing", "inputInstances": []}}
        with patch("composition.pipeline.build_context", new=AsyncMock(return_value=bread_context)), \
             patch("composition.pipeline.aggregate_candidates", new=AsyncMock(return_value=[])):
            result = await suggest_food(
                SuggestionParams(query="Dough 50 g"), registry, chain=make_chain(FakeProvider("groq", [model_output]))
            )

        assert result["quantity"] == 50
        # Flour = 50 * 50%, Water = 50 * 30%, Salt prende il residuo
        assert _inputs(result) == [("Flour", 25), ("Water", 15), ("Salt", 10)]

    @pytest.mark.asyncio
    async def test_model_percentages_converted(self, registry, no_io):
        model_output = {
            "name": "Dough",
            "process": {"type": "mixing", "inputInstances": [
                {"instance": {"name": "Flour", "category": "ingredient"}, "quantity": 60},
                {"instance": {"name": "Water", "category": "ingredient"}, "quantity": 40},
            ]},
        }
        result = await suggest_food(
            SuggestionParams(query="Dough 500 g"), registry, chain=make_chain(FakeProvider("groq", [model_output]))
        )

        assert result["quantity"] == 500
        assert result["process"]["type"] == "blending"
        assert _inputs(result) == [("Flour", 300), ("Water", 200)]

    @pytest.mark.asyncio
    async def test_model_quantity_without_basis_is_discarded(self, registry, no_io):
        model_output = {"name": "Cake", "quantity": 1000, "process": {"type": "cooking", "inputInstances": []}}
        result = await suggest_food(
            SuggestionParams(query="Cake"), registry, chain=make_chain(FakeProvider("groq", [model_output]))
        )
        assert result["quantity"] == 0

    @pytest.mark.asyncio
    async def test_explicit_quantity_used(self, registry, no_io):
        model_output = {"name": "Soup", "process": {"type": "cooking", "inputInstances": [
            {"instance": {"name": "Carrot"}, "quantity": 30},
        ]}}
        result = await suggest_food(
            SuggestionParams(query="Vegetable soup", quantity=500),
            registry,
            chain=make_chain(FakeProvider("groq", [model_output])),
        )

        assert result["quantity"] == 500
        # 30% di 500, resto all'acqua sintetica (zuppa = liquido)
        assert _inputs(result) == [("Carrot", 150), ("Water", 350)]

    @pytest.mark.asyncio
    async def test_root_wrapper_and_type_as_name(self, registry, no_io):
        model_output = {"product": {"type": "Granola", "process": {"type": "blending", "inputInstances": [
            {"instance": {"type": "Oats"}, "quantity": 0},
        ]}}}
        result = await suggest_food(
            SuggestionParams(query="Granola"), registry, chain=make_chain(FakeProvider("groq", [model_output]))
        )
        assert result["name"] == "Granola"
        assert _inputs(result) == [("Oats", 0)]

    @pytest.mark.asyncio
    async def test_fallback_provider_used(self, registry, no_io):
        failing = FakeProvider("groq", [ProviderError("429")])
        working = FakeProvider("gemini", [{"name": "Jam", "process": {"type": "cooking", "inputInstances": []}}])

        result = await suggest_food(SuggestionParams(query="Jam"), registry, chain=make_chain(failing, working))

        assert result["name"] == "Jam"
        assert failing.calls == 1 and working.calls == 1

    @pytest.mark.asyncio
    async def test_candidates_in_prompt(self, registry):
        provider = FakeProvider("groq", [{"name": "Nutella", "process": {"type": "blending", "inputInstances": []}}])
        candidates = [Candidate(source="OpenFoodFacts", name="Nutella", id="301", ingredients="sugar, palm oil")]

        with patch("composition.pipeline.build_context", new=AsyncMock(return_value="")), \
             patch("composition.pipeline.aggregate_candidates", new=AsyncMock(return_value=candidates)):
            await suggest_food(SuggestionParams(query="Nutella"), registry, chain=make_chain(provider))

        prompt = provider.prompts[0]
        assert "sugar, palm oil" in prompt
        assert "'blending'" in prompt and "'cooking'" in prompt

    @pytest.mark.asyncio
    async def test_cross_check_counts_missing_without_mutation(self, registry, bread_context):
        model_output = {"name": "Bread", "process": {"type": "cooking", "inputInstances": [
            {"instance": {"name": "Wheat flour"}, "quantity": 600},
            {"instance": {"name": "Yeast"}, "quantity": 400},
        ]}}
        with patch("composition.pipeline.build_context", new=AsyncMock(return_value=bread_context)), \
             patch("composition.pipeline.aggregate_candidates", new=AsyncMock(return_value=[])):
            result = await suggest_food(
                SuggestionParams(query="Bread 1 kg"), registry, chain=make_chain(FakeProvider("groq", [model_output]))
            )

        assert _inputs(result) == [("Wheat flour", 600), ("Yeast", 400)]
        # Water e Salt non presenti negli input del modello
        assert get_snapshot().get("pipeline.cross_check_missing") == 2


class TestCrossCheck:

    def test_fuzzy_match(self):
        inputs = [{"instance": {"name": "Wheat Flour"}}, {"instance": {"name": "Sea salt"}}]
        extracted = [ExtractedIngredient("flour"), ExtractedIngredient("salt"), ExtractedIngredient("Sugar")]
        assert cross_check_inputs(inputs, extracted) == ["Sugar"]


class TestDecomposeNonFood:

    @pytest.mark.asyncio
    async def test_model_output_normalized(self, registry):
        model_output = {"category": "furniture", "name": "Chair", "process": {"type": "Assembly and milling",
                        "inputInstances": [{"instance": {"name": "Oak wood", "category": "material"}, "quantity": 4000}]}}
        result = await decompose_non_food(
            NonFoodParams(query="Chair"), registry, chain=make_chain(FakeProvider("groq", [model_output]))
        )
        assert result["process"]["type"] == "milling"
        assert _inputs(result) == [("Oak wood", 4000)]

    @pytest.mark.asyncio
    async def test_phone_fallback(self, registry):
        result = await decompose_non_food(NonFoodParams(query="Smartphone X"), registry, chain=make_chain())
        assert result["category"] == "non-food"
        assert [name for name, _ in _inputs(result)] == [
            "Battery (Li-ion)", "Screen (OLED)", "PCB & Chips", "Aluminum Casing",
        ]
        assert result["process"]["type"] in registry.types

    @pytest.mark.asyncio
    async def test_generic_fallback(self, registry):
        result = await decompose_non_food(NonFoodParams(query="Desk lamp"), registry, chain=make_chain())
        assert result["name"] == "Desk lamp"
        assert result["process"] == {"type": "blending", "inputInstances": []}

    def test_fallback_decomposition_shape(self):
        tree = fallback_decomposition("Old phone", "blending")
        assert len(tree["process"]["inputInstances"]) == 4


class TestRunExtraction:

    @pytest.mark.asyncio
    async def test_model_result_returned(self):
        output = {
            "summary": "Found 1 product and 2 ingredients",
            "populated": {
                "instance": {"name": "Jam", "quantity": {"value": 250, "unit": "g"}},
                "process": {"name": "Production of Jam", "inputInstances": [{"name": "Strawberries"}]},
            },
        }
        result = await run_extraction(
            ExtractionRequest(text="Strawberry jam 250 g"), chain=make_chain(FakeProvider("groq", [output]))
        )
        assert result == output

    @pytest.mark.asyncio
    async def test_heuristic_fallback(self):
        request = ExtractionRequest(
            text="Chocolate bar 100 g\nIngredients: Sugar 40%, Cocoa butter, Milk powder.",
            attachments=[{"name": "label.txt", "content": "Made in Italy"}],
        )
        result = await run_extraction(request, chain=make_chain())

        assert "error" in result
        instance = result["populated"]["instance"]
        assert instance["name"] == "Chocolate bar 100 g"
        assert instance["quantity"] == {"value": 100, "unit": "g"}
        inputs = result["populated"]["process"]["inputInstances"]
        assert [i["name"] for i in inputs] == ["Sugar", "Cocoa butter", "Milk powder"]
        assert inputs[0]["amount"] == {"value": 40.0, "unit": "%"}
        assert inputs[1]["amount"] is None

    @pytest.mark.asyncio
    async def test_result_without_populated_falls_back(self):
        result = await run_extraction(
            ExtractionRequest(text="Ingredients: Oats"), chain=make_chain(FakeProvider("groq", [{"summary": "?"}]))
        )
        assert result["error"]
        assert [i["name"] for i in result["populated"]["process"]["inputInstances"]] == ["Oats"]
