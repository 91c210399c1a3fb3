"""Unit tests for root-analysis extraction, validation and repair."""
import json

import pytest

from app.services.root_analysis import (
    RootAnalysisError,
    attempt_data_fix,
    extract_and_clean_json_from_response,
    parse_root_analysis,
    validate_complete_root_analysis,
    validate_root_analysis_result,
    validate_word_components,
)
from tests.conftest import root_analysis_json


def _data(**overrides):
    return json.loads(root_analysis_json(**overrides))


# ---------------------------------------------------------------------------
# Extraction
# ---------------------------------------------------------------------------

def test_extract_from_code_fence_with_prose():
    raw = 'Sure!\n```json\n{"a": 1}\n```\nHope this helps.'
    assert json.loads(extract_and_clean_json_from_response(raw)) == {"a": 1}


def test_extract_ignores_braces_inside_strings():
    raw = 'Result: {"a": "x } y", "b": {"c": 2}} trailing {junk}'
    assert json.loads(extract_and_clean_json_from_response(raw)) == {"a": "x } y", "b": {"c": 2}}


def test_extract_repairs_common_mangling():
    raw = """{
  // the analysis
  "prefixText": None,
  "flag": True,
  "items": [1, 2,],
}"""
    assert json.loads(extract_and_clean_json_from_response(raw)) == {
        "prefixText": None,
        "flag": True,
        "items": [1, 2],
    }


def test_extract_keeps_smart_quotes_inside_valid_json():
    raw = '{"connection": "“con” + “struct”"}'
    assert json.loads(extract_and_clean_json_from_response(raw)) == {"connection": "“con” + “struct”"}


def test_extract_replaces_smart_quote_delimiters():
    raw = "{“a”: “b”}"
    assert json.loads(extract_and_clean_json_from_response(raw)) == {"a": "b"}


def test_extract_closes_truncated_output():
    raw = '{"a": [1, 2, 3'
    assert json.loads(extract_and_clean_json_from_response(raw)) == {"a": [1, 2, 3]}


def test_extract_closes_output_cut_inside_related_word():
    raw = '{"viMeaning": "x", "sameRoot": [{"word": "a", "rootText": "b"'
    assert json.loads(extract_and_clean_json_from_response(raw)) == {
        "viMeaning": "x",
        "sameRoot": [{"word": "a", "rootText": "b"}],
    }


def test_extract_closes_output_cut_inside_string():
    raw = '{"sameRoot": [{"word": "a"}, {"word": "obstr'
    assert json.loads(extract_and_clean_json_from_response(raw)) == {
        "sameRoot": [{"word": "a"}, {"word": "obstr"}],
    }


def test_extract_closes_output_cut_after_comma():
    raw = '{"a": {"b": [1, {"c": "]}"},'
    assert json.loads(extract_and_clean_json_from_response(raw)) == {"a": {"b": [1, {"c": "]}"}]}}


@pytest.mark.parametrize("raw", [None, "", "   ", "no json here"])
def test_extract_without_object(raw):
    assert extract_and_clean_json_from_response(raw) is None


# ---------------------------------------------------------------------------
# Validation and repair
# ---------------------------------------------------------------------------

def test_validate_accepts_well_formed_result():
    outcome = validate_root_analysis_result(_data())
    assert outcome.success
    assert outcome.data.root_text == "struct"
    assert len(outcome.data.same_root) == 5


def test_validate_requires_exactly_five_related_words():
    data = _data()
    data["sameRoot"] = data["sameRoot"][:4]
    outcome = validate_root_analysis_result(data)
    assert not outcome.success
    assert outcome.details


def test_validate_rejects_placeholder_prefix():
    outcome = validate_root_analysis_result(_data(prefixText="null"))
    assert not outcome.success
    assert "placeholder" in outcome.details[0]


def test_validate_rejects_non_object():
    assert not validate_root_analysis_result([1, 2]).success


def test_fix_normalises_keys_and_placeholders():
    data = _data()
    fixed_input = {
        "result": {
            "vi_meaning": "  xây   dựng ",
            "prefix": "none",
            "root_text": "struct",
            "explanation": data["connection"],
            "related_words": data["sameRoot"] + [data["sameRoot"][0]],
        }
    }
    fixed = attempt_data_fix(fixed_input)
    assert fixed is not None
    assert fixed.vi_meaning == "xây dựng"
    assert fixed.prefix_text is None
    assert [w.word for w in fixed.same_root] == [
        "destruct",
        "instruct",
        "structure",
        "obstruct",
        "infrastructure",
    ]


def test_fix_truncates_extra_related_words():
    data = _data()
    data["sameRoot"].append(
        {"word": "constructive", "viMeaning": "mang tính xây dựng", "prefixText": "con", "rootText": "struct", "connection": "x"}
    )
    fixed = attempt_data_fix(data)
    assert len(fixed.same_root) == 5


def test_fix_gives_up_with_too_few_words():
    data = _data()
    data["sameRoot"] = data["sameRoot"][:3]
    assert attempt_data_fix(data) is None
    assert attempt_data_fix("not a dict") is None


# ---------------------------------------------------------------------------
# Word components
# ---------------------------------------------------------------------------

def test_word_components():
    assert validate_word_components("Construct", "con", "STRUCT").success
    assert validate_word_components("structure", None, "struct").success
    assert not validate_word_components("construct", None, "duct").success
    assert not validate_word_components("construct", "pre", "struct").success
    assert not validate_word_components("structcon", "con", "struct").success


def test_complete_check_warns_on_related_words_only():
    data = _data()
    data["sameRoot"][0].update(word="construct", prefixText="con")
    data["sameRoot"][1]["rootText"] = "xyz"
    result = validate_root_analysis_result(data).data

    check = validate_complete_root_analysis(result, "construct")
    assert check.success
    assert len(check.warnings) == 2


# ---------------------------------------------------------------------------
# Full pipeline
# ---------------------------------------------------------------------------

def test_parse_root_analysis_success():
    result = parse_root_analysis(f"```json\n{root_analysis_json()}\n```", "construct")
    assert result.prefix_text == "con"


@pytest.mark.parametrize(
    "response, message",
    [
        ("no braces at all", "AI service returned invalid response format"),
        ("{ this is not json", "AI service returned malformed JSON"),
        ('{"viMeaning": "x"}', "AI service returned invalid data structure"),
    ],
)
def test_parse_root_analysis_errors(response, message):
    with pytest.raises(RootAnalysisError) as exc_info:
        parse_root_analysis(response, "construct")
    assert exc_info.value.status_code == 500
    assert exc_info.value.message == message
    assert exc_info.value.details


def test_parse_root_analysis_logical_error():
    with pytest.raises(RootAnalysisError) as exc_info:
        parse_root_analysis(root_analysis_json(rootText="duct"), "construct")
    assert exc_info.value.message == "AI analysis contains logical errors"
