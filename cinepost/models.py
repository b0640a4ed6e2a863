# models.py
from dataclasses import dataclass, field, fields
from typing import Optional, List, Dict, Any, Union

from .enums import OperationKind, ProviderKind, AttemptOutcome

NOT_AVAILABLE = "N/A"

# Canonical wire key for each MovieMetadata attribute
METADATA_WIRE_KEYS: Dict[str, str] = {
    'genre': 'genre',
    'rating_score': 'ratingScore',
    'plot_summary': 'plotSummary',
    'director': 'director',
    'cast_list': 'castList',
    'budget': 'budget',
    'release_date': 'releaseDate',
    'language': 'language',
    'poster_url': 'posterUrl',
}

@dataclass
class MovieMetadata:
    """Normalized movie/series metadata handed to the post editor.

    Every field is always a string: "N/A" when the provider could not supply it,
    except poster_url which is "" when there is no image.
    """
    genre: str = NOT_AVAILABLE
    rating_score: str = NOT_AVAILABLE # provider-native scale, never renormalized
    plot_summary: str = NOT_AVAILABLE
    director: str = NOT_AVAILABLE
    cast_list: str = NOT_AVAILABLE # comma-joined
    budget: str = NOT_AVAILABLE
    release_date: str = NOT_AVAILABLE
    language: str = NOT_AVAILABLE
    poster_url: str = ""

    def to_dict(self) -> Dict[str, str]:
        """Returns the record keyed by the canonical camelCase wire names."""
        return {wire: getattr(self, attr) for attr, wire in METADATA_WIRE_KEYS.items()}

    @classmethod
    def field_names(cls) -> List[str]:
        return [f.name for f in fields(cls)]


@dataclass(frozen=True)
class Citation:
    """A grounding source returned alongside generated text."""
    uri: str
    title: Optional[str] = None


@dataclass(frozen=True)
class ProviderDescriptor:
    name: str
    kind: ProviderKind
    credential: Optional[str] = None
    supports_grounding: bool = False

    @property
    def is_configured(self) -> bool:
        return bool(self.credential and self.credential.strip())


@dataclass(frozen=True)
class ProviderCredentials:
    """Immutable snapshot of the API keys one cascade may use."""
    tmdb: Optional[str] = None
    omdb: Optional[str] = None
    gemini: Optional[str] = None
    groq: Optional[str] = None
    openrouter: Optional[str] = None

    @classmethod
    def from_config(cls, cfg_helper) -> "ProviderCredentials":
        return cls(
            tmdb=cfg_helper.get_api_key('tmdb'),
            omdb=cfg_helper.get_api_key('omdb'),
            gemini=cfg_helper.get_api_key('gemini'),
            groq=cfg_helper.get_api_key('groq'),
            openrouter=cfg_helper.get_api_key('openrouter'),
        )


@dataclass(frozen=True)
class CascadeRequest:
    """One user action. Built fresh per action, holds no state."""
    operation: OperationKind
    title: str
    context: str = ""


@dataclass
class ProviderResponse:
    """What a provider client hands back before normalization."""
    payload: Any # provider-native dict for lookups, text for generative answers
    citations: List[Citation] = field(default_factory=list)


@dataclass(frozen=True)
class ProviderAttempt:
    provider_name: str
    outcome: AttemptOutcome
    message: Optional[str] = None

    def render(self) -> str:
        reason = self.message or str(self.outcome)
        return f"- {self.provider_name} ({self.outcome}): {reason}"


@dataclass
class AggregatedFailure:
    """Every failed attempt of one cascade, in attempt order."""
    request: CascadeRequest
    attempts: List[ProviderAttempt] = field(default_factory=list)
    advisories: List[str] = field(default_factory=list)

    def render(self) -> str:
        count = len(self.attempts)
        noun = "provider" if count == 1 else "providers"
        lines = [f"All {count} attempted {noun} failed to {self.request.operation.value} for '{self.request.title}':"]
        lines.extend(attempt.render() for attempt in self.attempts)
        if self.advisories:
            lines.append("Note: " + "; ".join(self.advisories))
        return "\n".join(lines)


@dataclass
class CascadeResult:
    """Successful resolution: the normalized value plus how it was obtained."""
    provider_name: str
    value: Union[MovieMetadata, str]
    citations: List[Citation] = field(default_factory=list)
    attempts: List[ProviderAttempt] = field(default_factory=list)
    advisories: List[str] = field(default_factory=list)

    @property
    def metadata(self) -> Optional[MovieMetadata]:
        return self.value if isinstance(self.value, MovieMetadata) else None

    @property
    def text(self) -> Optional[str]:
        return self.value if isinstance(self.value, str) else None
