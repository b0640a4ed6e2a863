# cinepost/prompt_builder.py
"""
Instruction text for the generative providers. Pure functions, no I/O.

The metadata prompt is the contract normalize_generative() relies on: a
single JSON object with exactly the canonical keys and "N/A" for unknowns.
"""

from typing import Callable, Dict, List

from .enums import OperationKind
from .models import CascadeRequest, METADATA_WIRE_KEYS, NOT_AVAILABLE

TITLE_CONTENT_LIMIT = 2000
SUMMARY_CONTENT_LIMIT = 3000

# Shown to the model next to each key; keys must stay in sync with METADATA_WIRE_KEYS
_FIELD_HINTS: Dict[str, str] = {
    'genre': 'comma-separated genres',
    'ratingScore': 'the rating as published by the source, e.g. "8.8" or "88%"',
    'plotSummary': 'a plot summary of a few sentences, no spoilers',
    'director': 'director(s), or creator(s) for a series, comma-separated',
    'castList': 'top-billed cast names, comma-separated in a single string',
    'budget': 'production budget, e.g. "$160 Million"',
    'releaseDate': 'release or first air date',
    'language': 'original language(s)',
    'posterUrl': 'absolute URL of an official poster image, or an empty string',
}


def metadata_keys() -> List[str]:
    return list(METADATA_WIRE_KEYS.values())


def _metadata_prompt(request: CascadeRequest) -> str:
    key_lines = "\n".join(f'  "{key}": {_FIELD_HINTS[key]}' for key in metadata_keys())
    return (
        f'Find factual metadata for the movie or TV series titled "{request.title}".\n'
        "Respond with strict JSON only: a single JSON object, no markdown fences, no commentary.\n"
        f"The object must contain exactly these keys ({', '.join(metadata_keys())}):\n"
        f"{key_lines}\n"
        "Every value must be a string. Lists must be comma-joined text, not JSON arrays.\n"
        f'Use the exact string "{NOT_AVAILABLE}" for any value you cannot determine '
        '(posterUrl uses "" when no image is known). Do not invent values.'
    )


def _optimize_title_prompt(request: CascadeRequest) -> str:
    return (
        "Based on this blog post content, suggest 5 catchy and SEO-friendly titles.\n"
        f"Content: {request.context[:TITLE_CONTENT_LIMIT]}\n"
        "Return only the titles as a bulleted list."
    )


def _summarize_prompt(request: CascadeRequest) -> str:
    return (
        "Summarize this blog post in 2-3 sentences for a social media preview.\n"
        f"Title: {request.title}\n"
        f"Content: {request.context[:SUMMARY_CONTENT_LIMIT]}"
    )


def _fix_grammar_prompt(request: CascadeRequest) -> str:
    return (
        "Fix the grammar and improve the flow of this text while maintaining its meaning.\n"
        f"Text: {request.context}"
    )


def _expand_points_prompt(request: CascadeRequest) -> str:
    return (
        "Expand the following points into a detailed, professional blog paragraph.\n"
        f"Points: {request.context}"
    )


_BUILDERS: Dict[OperationKind, Callable[[CascadeRequest], str]] = {
    OperationKind.FETCH_FULL_METADATA: _metadata_prompt,
    OperationKind.OPTIMIZE_TITLE: _optimize_title_prompt,
    OperationKind.SUMMARIZE_PLOT: _summarize_prompt,
    OperationKind.FIX_GRAMMAR: _fix_grammar_prompt,
    OperationKind.EXPAND_POINTS: _expand_points_prompt,
}


def build_prompt(request: CascadeRequest) -> str:
    """Returns the instruction text for request.operation."""
    builder = _BUILDERS.get(request.operation)
    if builder is None:
        raise ValueError(f"No prompt defined for operation '{request.operation}'")
    return builder(request)


def wants_json(request: CascadeRequest) -> bool:
    return request.operation is OperationKind.FETCH_FULL_METADATA
