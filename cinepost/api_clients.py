# cinepost/api_clients.py

import logging
import re
import time
from typing import Any, Iterable, Optional

import requests

from .config_manager import CascadeSettings
from .enums import OperationKind, ProviderKind
from .exceptions import CredentialError, ProviderError, ProviderTimeout
from .models import CascadeRequest, MovieMetadata, ProviderDescriptor, ProviderResponse
from .normalizer import normalize_canonical

log = logging.getLogger(__name__)

_YEAR_SUFFIX_RE = re.compile(r'\s*\(\d{4}\)\s*$')

# Substrings in error bodies that mean "your key is wrong", across providers
INVALID_KEY_MARKERS = ("invalid api key", "invalid_api_key", "api key not valid", "no auth credentials")

# Floor for the per-call HTTP timeout handed to requests
MIN_CALL_TIMEOUT = 0.05


def strip_year_suffix(title: str) -> str:
    """'Inception (2010)' -> 'Inception'. Only a trailing parenthesised year is removed."""
    stripped = _YEAR_SUFFIX_RE.sub('', title or '').strip()
    return stripped or (title or '').strip()


def _error_detail(response: requests.Response) -> Optional[str]:
    try:
        body = response.json()
    except ValueError:
        return None
    if not isinstance(body, dict): return None
    error = body.get('error')
    if isinstance(error, dict) and error.get('message'):
        return str(error['message'])
    for key in ('status_message', 'Error', 'message', 'error'):
        if body.get(key) and isinstance(body[key], str):
            return body[key]
    return None


def raise_for_provider_status(response: requests.Response, invalid_key_markers: Iterable[str] = INVALID_KEY_MARKERS) -> None:
    """Classifies a non-2xx response. 401 or an invalid-key body -> CredentialError."""
    if response.ok:
        return
    detail = _error_detail(response)
    detail_lower = (detail or '').lower()
    if response.status_code == 401 or any(marker in detail_lower for marker in invalid_key_markers):
        raise CredentialError(f"invalid API key (status {response.status_code})")
    message = f"provider returned status {response.status_code}"
    if detail:
        message += f": {detail}"
    raise ProviderError(message)


def parse_json_body(response: requests.Response) -> Any:
    try:
        return response.json()
    except ValueError as e:
        raise ProviderError("malformed JSON response") from e


class ProviderClient:
    """
    One external data source. Subclasses implement fetch() (blocking, run on a
    worker thread by the cascade) and normalize() for their payload shape.
    fetch() returns None for a well-formed "not found" and raises ProviderError
    for everything else that is not a success.
    """
    def __init__(self, descriptor: ProviderDescriptor, settings: Optional[CascadeSettings] = None, session: Optional[requests.Session] = None):
        self.descriptor = descriptor
        self.settings = settings or CascadeSettings()
        self.session = session if session is not None else requests.Session()

    def __repr__(self) -> str:
        return f"<{type(self).__name__} name={self.name!r} configured={self.is_configured}>"

    @property
    def name(self) -> str:
        return self.descriptor.name

    @property
    def kind(self) -> ProviderKind:
        return self.descriptor.kind

    @property
    def is_configured(self) -> bool:
        return self.descriptor.is_configured

    @property
    def api_key(self) -> Optional[str]:
        return self.descriptor.credential.strip() if self.descriptor.credential else None

    def supports(self, operation: OperationKind) -> bool:
        if self.kind is ProviderKind.STRUCTURED_LOOKUP:
            return operation is OperationKind.FETCH_FULL_METADATA
        return True

    @property
    def request_timeout(self) -> float:
        return float(self.settings.provider_timeout_seconds)

    def check_deadline(self, deadline: Optional[float]) -> None:
        """Raises ProviderTimeout once the attempt's time.monotonic() deadline has passed."""
        if deadline is not None and time.monotonic() >= deadline:
            raise ProviderTimeout(f"no answer within {self.request_timeout:g}s")

    def time_left(self, deadline: Optional[float]) -> float:
        """HTTP timeout for the next call: what is left of the attempt, never more than request_timeout."""
        if deadline is None:
            return self.request_timeout
        self.check_deadline(deadline)
        return min(self.request_timeout, max(deadline - time.monotonic(), MIN_CALL_TIMEOUT))

    def _http_get(self, url: str, params: dict, deadline: Optional[float] = None) -> requests.Response:
        timeout = self.time_left(deadline)
        try:
            return self.session.get(url, params=params, timeout=timeout)
        except requests.Timeout as e:
            raise ProviderTimeout(f"no answer within {self.request_timeout:g}s") from e
        except requests.RequestException as e:
            # The exception text carries the full URL, query-string key included
            raise ProviderError(f"network error ({type(e).__name__})") from e

    def _http_post(self, url: str, payload: dict, headers: Optional[dict] = None, deadline: Optional[float] = None) -> requests.Response:
        timeout = self.time_left(deadline)
        try:
            return self.session.post(url, json=payload, headers=headers, timeout=timeout)
        except requests.Timeout as e:
            raise ProviderTimeout(f"no answer within {self.request_timeout:g}s") from e
        except requests.RequestException as e:
            raise ProviderError(f"network error ({type(e).__name__})") from e

    def fetch(self, request: CascadeRequest, deadline: Optional[float] = None) -> Optional[ProviderResponse]:
        """deadline is a time.monotonic() value; every network call must finish before it."""
        raise NotImplementedError

    def normalize(self, payload: Any) -> MovieMetadata:
        return normalize_canonical(payload)
