"""Tests for salvaging JSON arrays from LLM replies."""

from __future__ import annotations

from evidence_engine.llm.json_extract import extract_json_array


def test_plain_array() -> None:
    assert extract_json_array('[{"index": 0}]') == [{"index": 0}]


def test_array_inside_code_fence_and_prose() -> None:
    raw = 'Sure, here you go:\n```json\n[{"index": 1, "contradicts": false}]\n```\nDone.'
    assert extract_json_array(raw) == [{"index": 1, "contradicts": False}]


def test_malformed_array_returns_empty() -> None:
    assert extract_json_array('[{"index": 0,, }]') == []


def test_no_array_returns_empty() -> None:
    assert extract_json_array('{"index": 0}') == []
    assert extract_json_array("") == []
    assert extract_json_array(None) == []
