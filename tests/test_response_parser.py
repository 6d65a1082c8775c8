import json

import pytest

from models.analysis import Category
from services.planner.response_parser import DEFAULT_PRINCIPLES, extract_json_candidate, parse_analysis


def test_fenced_json_block_is_recovered_exactly(analysis_text, analysis_json):
    analysis = parse_analysis(analysis_text)

    assert analysis.raw_text is None
    assert not analysis.degraded
    assert analysis.overall_description == analysis_json["current_assessment"]["overall_description"]
    recs = analysis_json["improvement_recommendations"]
    assert len(analysis.recommendations) == len(recs)
    for parsed, expected in zip(analysis.recommendations, recs):
        assert parsed.category.value == expected["category"]
        assert parsed.recommendation == expected["recommendation"]
        assert parsed.expected_benefits == expected["expected_benefits"]
    assert list(analysis.principles) == analysis_json["urban_planning_principles"]


def test_bare_json_with_surrounding_prose(analysis_json):
    text = "Sure! " + json.dumps(analysis_json) + " Let me know if you need more."

    analysis = parse_analysis(text)

    assert [r.recommendation for r in analysis.recommendations] == [
        r["recommendation"] for r in analysis_json["improvement_recommendations"]
    ]


def test_unmarked_fence_starting_with_brace(analysis_json):
    text = "```\n" + json.dumps(analysis_json) + "\n```"

    assert len(parse_analysis(text).recommendations) == 3


def test_json_fence_preferred_over_earlier_braces(analysis_json):
    text = "Note {this is not json}\n```json\n" + json.dumps(analysis_json) + "\n```"

    assert extract_json_candidate(text).startswith("{")
    assert len(parse_analysis(text).recommendations) == 3


def test_balanced_span_ignores_braces_inside_strings():
    text = 'prefix {"current_assessment": {"overall_description": "a } tricky { one"}} suffix }'

    candidate = extract_json_candidate(text)

    assert json.loads(candidate)["current_assessment"]["overall_description"] == "a } tricky { one"


def test_plain_text_returns_default_analysis():
    text = "I think this space needs work."

    analysis = parse_analysis(text)

    assert analysis.raw_text == text
    assert len(analysis.identified_issues) >= 1
    assert len(analysis.recommendations) >= 1
    assert len(analysis.principles) >= 1
    assert analysis.principles == DEFAULT_PRINCIPLES


def test_malformed_json_returns_default_analysis():
    text = '```json\n{"current_assessment": {"overall_description": "cut off",\n```'

    analysis = parse_analysis(text)

    assert analysis.raw_text == text
    assert analysis.recommendations[0].category is Category.OTHER


def test_json_array_is_not_an_analysis():
    text = "[1, 2, 3]"

    assert parse_analysis(text).raw_text == text


def test_empty_text_returns_default():
    analysis = parse_analysis("")

    assert analysis.raw_text == ""
    assert analysis.recommendations


def test_missing_fields_pass_through_with_defaults():
    text = json.dumps(
        {
            "improvement_recommendations": [
                {"recommendation": "Add benches"},
                {"category": "safety", "recommendation": "Better lighting", "expected_benefits": "Night use"},
                "Paint crosswalks",
            ]
        }
    )

    analysis = parse_analysis(text)

    assert analysis.raw_text is None
    assert analysis.overall_description == ""
    assert analysis.identified_issues == ()
    assert analysis.principles == ()
    assert [r.category for r in analysis.recommendations] == [Category.OTHER, Category.SAFETY, Category.OTHER]
    assert analysis.recommendations[0].expected_benefits == ""
    assert analysis.recommendations[2].recommendation == "Paint crosswalks"


def test_category_matching_is_forgiving():
    text = json.dumps(
        {
            "improvement_recommendations": [
                {"category": "public_space", "recommendation": "Plaza"},
                {"category": "PublicSpace", "recommendation": "Plaza 2"},
                {"category": "General", "recommendation": "Misc"},
            ]
        }
    )

    categories = [r.category for r in parse_analysis(text).recommendations]

    assert categories == [Category.PUBLIC_SPACE, Category.PUBLIC_SPACE, Category.OTHER]


def test_wrongly_typed_sections_become_empty():
    text = json.dumps({"current_assessment": "n/a", "improvement_recommendations": {"a": 1}})

    analysis = parse_analysis(text)

    assert analysis.recommendations == ()
    assert analysis.raw_text is None


@pytest.mark.parametrize("prefix", ["", "```json\n", "Here you go:\n"])
def test_truncated_json_returns_default_analysis(prefix):
    text = prefix + (
        '{"current_assessment": {"overall_description": "Busy road", '
        '"identified_issues": [{"category": "Safety", "details": "Fast traffic"}]}, '
        '"improvement_recommendations": [{"category": "Safety", "recommendation": "Add'
    )

    analysis = parse_analysis(text)

    assert extract_json_candidate(text) is None
    assert analysis.raw_text == text
    assert analysis.identified_issues and analysis.recommendations and analysis.principles
    assert analysis.principles == DEFAULT_PRINCIPLES


def test_object_without_analysis_sections_returns_default():
    text = '{"category": "Safety", "details": "Fast traffic"}'

    analysis = parse_analysis(text)

    assert analysis.raw_text == text
    assert analysis.recommendations[0].category is Category.OTHER
