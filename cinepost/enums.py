# cinepost/enums.py
from enum import Enum, auto
from typing import Union


class OperationKind(Enum):
    """The kinds of request a cascade can resolve. Values are the wire names."""
    FETCH_FULL_METADATA = "fetch-full-metadata"
    OPTIMIZE_TITLE = "optimize-title"
    SUMMARIZE_PLOT = "summarize-plot"
    FIX_GRAMMAR = "fix-grammar"
    EXPAND_POINTS = "expand-points"

    @property
    def is_text_operation(self) -> bool:
        # Structured databases can only answer metadata lookups
        return self is not OperationKind.FETCH_FULL_METADATA

    @classmethod
    def parse(cls, value: Union[str, "OperationKind"]) -> "OperationKind":
        if isinstance(value, cls):
            return value
        normalized = str(value).strip().lower().replace("_", "-")
        for member in cls:
            if member.value == normalized:
                return member
        raise ValueError(f"Unknown operation '{value}'. Expected one of: {', '.join(m.value for m in cls)}")


class ProviderKind(Enum):
    STRUCTURED_LOOKUP = auto()  # movie database searched by title
    GENERATIVE_PROMPT = auto()  # LLM answering a prompt


class AttemptOutcome(Enum):
    """
    Result of a single provider attempt inside a cascade.
    Used for the aggregated failure report and for structured logging.
    """
    SUCCESS = auto()
    NOT_FOUND = auto()           # Provider reached, well-formed "no match" answer
    ERROR = auto()               # Non-2xx status, malformed payload, network failure
    CREDENTIAL_INVALID = auto()  # Provider rejected the API key
    TIMEOUT = auto()             # Per-attempt timeout elapsed

    def __str__(self):
        return self.name.replace("_", " ").lower()

    @property
    def is_failure(self) -> bool:
        return self is not AttemptOutcome.SUCCESS
