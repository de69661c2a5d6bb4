"""
Test parsing JSON tollerante delle risposte LLM.
"""
import pytest

from composition.json_utils import parse_json_lenient


class TestParseJsonLenient:

    def test_plain_object(self):
        result = parse_json_lenient('{"name": "Bread", "quantity": 0}')
        assert result.ok
        assert result.value == {"name": "Bread", "quantity": 0}
        assert result.reason is None

    def test_markdown_fence(self):
        result = parse_json_lenient('Sure!\n```json\n{"a": 1}\n```\nHope it helps')
        assert result.ok
        assert result.value == {"a": 1}

    def test_object_inside_prose(self):
        result = parse_json_lenient('Here you go: {"a": {"b": 2}} thanks')
        assert result.ok
        assert result.value == {"a": {"b": 2}}

    def test_first_of_two_objects(self):
        result = parse_json_lenient('{"a": 1} and then {"b": 2}')
        assert result.ok
        assert result.value == {"a": 1}

    def test_braces_inside_strings(self):
        result = parse_json_lenient('{"a": "x}y"} trailing }')
        assert result.ok
        assert result.value == {"a": "x}y"}

    @pytest.mark.parametrize("text,reason", [
        ("", "empty"),
        ("   ", "empty"),
        (None, "empty"),
        ("no json here", "no_object"),
        ("[1, 2, 3]", "not_object"),
        ("{not json}", "invalid_json"),
    ])
    def test_failures(self, text, reason):
        result = parse_json_lenient(text)
        assert not result.ok
        assert result.reason == reason
        assert result.value == {}
