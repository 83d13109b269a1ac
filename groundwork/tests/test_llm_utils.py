"""Tests for shared LLM response parsing utilities."""

import pytest
from groundwork.common.llm_utils import parse_index_list, parse_llm_json


class TestParseLlmJson:
    def test_valid_json(self):
        assert parse_llm_json('{"action": "SEARCH"}') == {"action": "SEARCH"}

    def test_json_with_markdown_fences(self):
        raw = '```json\n{"action": "FOCUS", "target": 2}\n```'
        assert parse_llm_json(raw) == {"action": "FOCUS", "target": 2}

    def test_json_with_plain_fences(self):
        raw = '```\n{"a": 1}\n```'
        assert parse_llm_json(raw) == {"a": 1}

    def test_json_embedded_in_text(self):
        raw = 'Here is the intent: {"action": "BROWSE"} hope that helps.'
        assert parse_llm_json(raw) == {"action": "BROWSE"}

    def test_no_json_returns_empty_dict(self):
        assert parse_llm_json("I think the user wants to search") == {}

    def test_empty_string_returns_empty_dict(self):
        assert parse_llm_json("") == {}

    def test_invalid_json_with_braces_returns_empty(self):
        assert parse_llm_json('{"broken: json') == {}

    def test_non_object_json_returns_empty(self):
        assert parse_llm_json('["SEARCH"]') == {}
        assert parse_llm_json('"SEARCH"') == {}


class TestParseIndexList:
    def test_comma_separated(self):
        assert parse_index_list("1, 3", upper=3) == [0, 2]

    def test_zero_means_none(self):
        assert parse_index_list("0", upper=3) == []

    def test_none_means_none(self):
        assert parse_index_list("None.", upper=3) == []

    def test_out_of_range_dropped(self):
        assert parse_index_list("2, 7", upper=3) == [1]

    def test_duplicates_keep_first_position(self):
        assert parse_index_list("3, 1, 3", upper=3) == [2, 0]

    def test_numbers_inside_prose(self):
        assert parse_index_list("Relevant notes: 1 and 2.", upper=3) == [0, 1]

    @pytest.mark.parametrize("raw", ["", "   "])
    def test_blank_is_empty(self, raw):
        assert parse_index_list(raw, upper=3) == []
