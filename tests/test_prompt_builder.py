# tests/test_prompt_builder.py
import pytest

from cinepost.enums import OperationKind
from cinepost.models import CascadeRequest, METADATA_WIRE_KEYS
from cinepost.prompt_builder import build_prompt, wants_json, metadata_keys, TITLE_CONTENT_LIMIT, SUMMARY_CONTENT_LIMIT


def test_metadata_prompt_demands_strict_json_with_exact_keys():
    prompt = build_prompt(CascadeRequest(OperationKind.FETCH_FULL_METADATA, "Inception (2010)"))
    assert "Inception (2010)" in prompt
    assert "strict JSON" in prompt
    assert '"N/A"' in prompt
    for key in METADATA_WIRE_KEYS.values():
        assert f'"{key}"' in prompt
    assert metadata_keys() == ['genre', 'ratingScore', 'plotSummary', 'director', 'castList', 'budget', 'releaseDate', 'language', 'posterUrl']


def test_optimize_title_truncates_content():
    content = "x" * (TITLE_CONTENT_LIMIT + 500)
    prompt = build_prompt(CascadeRequest(OperationKind.OPTIMIZE_TITLE, "My Review", content))
    assert "5 catchy and SEO-friendly titles" in prompt
    assert "bulleted list" in prompt
    assert "x" * TITLE_CONTENT_LIMIT in prompt
    assert "x" * (TITLE_CONTENT_LIMIT + 1) not in prompt


def test_summarize_includes_title_and_truncates():
    content = "y" * (SUMMARY_CONTENT_LIMIT + 10)
    prompt = build_prompt(CascadeRequest(OperationKind.SUMMARIZE_PLOT, "Dune Part Two Review", content))
    assert "2-3 sentences" in prompt
    assert "Title: Dune Part Two Review" in prompt
    assert "y" * (SUMMARY_CONTENT_LIMIT + 1) not in prompt


@pytest.mark.parametrize("operation, phrase", [
    (OperationKind.FIX_GRAMMAR, "Fix the grammar"),
    (OperationKind.EXPAND_POINTS, "professional blog paragraph"),
])
def test_text_operations_pass_full_content(operation, phrase):
    content = "z" * 5000
    prompt = build_prompt(CascadeRequest(operation, "Post", content))
    assert phrase in prompt
    assert content in prompt


def test_build_prompt_is_pure():
    request = CascadeRequest(OperationKind.FIX_GRAMMAR, "Post", "their going home")
    assert build_prompt(request) == build_prompt(request)


def test_wants_json_only_for_metadata():
    assert wants_json(CascadeRequest(OperationKind.FETCH_FULL_METADATA, "Heat"))
    for op in OperationKind:
        if op.is_text_operation:
            assert not wants_json(CascadeRequest(op, "Heat", "content"))
