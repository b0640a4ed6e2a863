# cinepost/normalizer.py
"""
Maps each provider's payload shape onto MovieMetadata.

One mapper per payload format (TMDB details, OMDb title lookup, generative
JSON, canonical record). All mappers share the same rules: missing values
become "N/A" (poster_url becomes ""), database cast lists are capped, numeric
ratings get one decimal, numeric budgets become "$160 Million" style strings.
Rating scales are never converted between providers.
"""

import logging
import math
from typing import AbstractSet, Any, Dict, Iterable, List, Mapping, Optional, Union

from .config_manager import DEFAULT_TMDB_IMAGE_BASE_URL
from .models import METADATA_WIRE_KEYS, MovieMetadata, NOT_AVAILABLE

log = logging.getLogger(__name__)

DEFAULT_CAST_LIMIT = 5


# Values every provider uses for "unknown"
_MISSING_MARKERS = frozenset({"", "n/a"})
# Models also spell out null; applied to generative payloads only
_GENERATIVE_MISSING_MARKERS = _MISSING_MARKERS | {"none", "null"}

# Keys generative models actually use besides the ones we ask for
_GENERATIVE_ALIASES: Dict[str, List[str]] = {
    'genre': ['genre', 'genres'],
    'rating_score': ['ratingScore', 'rating_score', 'rating', 'imdbRating'],
    'plot_summary': ['plotSummary', 'plot_summary', 'plot', 'summary'],
    'director': ['director', 'directors'],
    'cast_list': ['castList', 'cast_list', 'cast', 'actors'],
    'budget': ['budget'],
    'release_date': ['releaseDate', 'release_date', 'released'],
    'language': ['language', 'languages'],
    'poster_url': ['posterUrl', 'poster_url', 'poster'],
}


def _is_missing(value: Any, markers: AbstractSet[str] = _MISSING_MARKERS) -> bool:
    if value is None: return True
    if isinstance(value, float) and math.isnan(value): return True
    if isinstance(value, str): return value.strip().lower() in markers
    if isinstance(value, (list, tuple, dict)): return len(value) == 0
    return False


def _name_of(value: Any) -> Any:
    """{'name': 'Al Pacino', ...} -> 'Al Pacino'. Other mappings have no usable text."""
    if isinstance(value, Mapping):
        return value.get('name')
    return value


def text_or_na(value: Any, markers: AbstractSet[str] = _MISSING_MARKERS) -> str:
    value = _name_of(value)
    if _is_missing(value, markers): return NOT_AVAILABLE
    if isinstance(value, (list, tuple)):
        return join_names(value, markers=markers)
    if isinstance(value, Mapping):
        return NOT_AVAILABLE
    return str(value).strip()


def join_names(names: Iterable[Any], limit: Optional[int] = None, markers: AbstractSet[str] = _MISSING_MARKERS) -> str:
    cleaned = []
    for name in names:
        name = _name_of(name)
        if _is_missing(name, markers) or isinstance(name, (Mapping, list, tuple)):
            continue
        cleaned.append(str(name).strip())
    if limit is not None:
        cleaned = cleaned[:limit]
    return ", ".join(cleaned) if cleaned else NOT_AVAILABLE


def split_names(value: Any) -> List[str]:
    if _is_missing(value): return []
    if isinstance(value, (list, tuple)):
        return [str(v).strip() for v in value if not _is_missing(v)]
    return [part.strip() for part in str(value).split(',') if part.strip()]


def format_rating(value: Any, markers: AbstractSet[str] = _MISSING_MARKERS) -> str:
    if _is_missing(value, markers) or isinstance(value, (bool, Mapping, list, tuple)):
        return NOT_AVAILABLE
    if isinstance(value, (int, float)):
        return f"{float(value):.1f}"
    return str(value).strip()


def format_budget(value: Any, markers: AbstractSet[str] = _MISSING_MARKERS) -> str:
    if _is_missing(value, markers) or isinstance(value, (bool, Mapping, list, tuple)):
        return NOT_AVAILABLE
    if isinstance(value, (int, float)):
        if value <= 0:
            return NOT_AVAILABLE
        if value >= 1_000_000:
            millions = round(value / 1_000_000, 1)
            # 999,960,000 rounds to 1000.0 millions
            if millions >= 1000:
                return f"${round(value / 1_000_000_000, 1):g} Billion"
            return f"${millions:g} Million"
        return f"${int(value):,}"
    return str(value).strip()


def poster_url_or_empty(value: Any, image_base_url: Optional[str] = None, markers: AbstractSet[str] = _MISSING_MARKERS) -> str:
    if _is_missing(value, markers) or not isinstance(value, str): return ""
    value = value.strip()
    if value.startswith(('http://', 'https://')):
        return value
    if image_base_url and value.startswith('/'):
        return image_base_url.rstrip('/') + value
    return ""


def normalize_tmdb(details: Mapping[str, Any], image_base_url: str = DEFAULT_TMDB_IMAGE_BASE_URL, cast_limit: int = DEFAULT_CAST_LIMIT) -> MovieMetadata:
    """TMDB /movie/{id} or /tv/{id} payload with append_to_response=credits."""
    credits = details.get('credits') or {}
    is_tv = details.get('media_type') == 'tv'

    if is_tv:
        director = join_names(c.get('name') for c in details.get('created_by') or [])
    else:
        director = join_names(m.get('name') for m in credits.get('crew') or [] if m.get('job') == 'Director')

    rating = NOT_AVAILABLE
    # vote_average is 0.0 for titles nobody rated
    if details.get('vote_count'):
        rating = format_rating(details.get('vote_average'))

    language = NOT_AVAILABLE
    spoken = [l.get('english_name') or l.get('name') for l in details.get('spoken_languages') or []]
    if spoken:
        language = join_names(spoken)
    elif not _is_missing(details.get('original_language')):
        language = str(details['original_language'])

    return MovieMetadata(
        genre=join_names(g.get('name') for g in details.get('genres') or []),
        rating_score=rating,
        plot_summary=text_or_na(details.get('overview')),
        director=director,
        cast_list=join_names((c.get('name') for c in credits.get('cast') or []), limit=cast_limit),
        budget=format_budget(details.get('budget')),
        release_date=text_or_na(details.get('release_date') or details.get('first_air_date')),
        language=language,
        poster_url=poster_url_or_empty(details.get('poster_path'), image_base_url),
    )


def normalize_omdb(payload: Mapping[str, Any], cast_limit: int = DEFAULT_CAST_LIMIT) -> MovieMetadata:
    """OMDb ?t= lookup. Ratings arrive pre-formatted ("8.8") and pass through untouched."""
    return MovieMetadata(
        genre=text_or_na(payload.get('Genre')),
        rating_score=format_rating(payload.get('imdbRating')),
        plot_summary=text_or_na(payload.get('Plot')),
        director=text_or_na(payload.get('Director')),
        cast_list=join_names(split_names(payload.get('Actors')), limit=cast_limit),
        # OMDb has no production budget, only BoxOffice takings
        budget=format_budget(payload.get('Budget')),
        release_date=text_or_na(payload.get('Released')),
        language=text_or_na(payload.get('Language')),
        poster_url=poster_url_or_empty(payload.get('Poster')),
    )


def _pick(payload: Mapping[str, Any], aliases: List[str], markers: AbstractSet[str]) -> Any:
    for key in aliases:
        if key in payload and not _is_missing(payload[key], markers):
            return payload[key]
    return None


def _build_record(values: Mapping[str, Any], markers: AbstractSet[str]) -> MovieMetadata:
    return MovieMetadata(
        genre=text_or_na(values.get('genre'), markers),
        rating_score=format_rating(values.get('rating_score'), markers),
        plot_summary=text_or_na(values.get('plot_summary'), markers),
        director=text_or_na(values.get('director'), markers),
        cast_list=text_or_na(values.get('cast_list'), markers),
        budget=format_budget(values.get('budget'), markers),
        release_date=text_or_na(values.get('release_date'), markers),
        language=text_or_na(values.get('language'), markers),
        poster_url=poster_url_or_empty(values.get('poster_url'), markers=markers),
    )


def normalize_generative(payload: Mapping[str, Any]) -> MovieMetadata:
    """
    JSON object produced by an LLM following the metadata prompt. The prompt
    asks for comma-joined text; lists are joined but never truncated. Nested
    objects only count when they carry a "name".
    """
    values = {attr: _pick(payload, aliases, _GENERATIVE_MISSING_MARKERS) for attr, aliases in _GENERATIVE_ALIASES.items()}
    return _build_record(values, _GENERATIVE_MISSING_MARKERS)


def normalize_canonical(record: Union[MovieMetadata, Mapping[str, Any]]) -> MovieMetadata:
    """
    Identity for a record that already follows the rules; repairs one that
    does not. Only "" and "N/A" mean missing here, so a director literally
    named "None" survives.
    """
    if isinstance(record, MovieMetadata):
        record = record.to_dict()
    values = {attr: record.get(wire) for attr, wire in METADATA_WIRE_KEYS.items()}
    return _build_record(values, _MISSING_MARKERS)
