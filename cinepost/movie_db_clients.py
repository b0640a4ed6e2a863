# cinepost/movie_db_clients.py

import logging
from typing import Any, Dict, List, Optional

import requests

from .api_clients import ProviderClient, strip_year_suffix, raise_for_provider_status, parse_json_body
from .config_manager import CascadeSettings
from .enums import ProviderKind
from .exceptions import CredentialError, ProviderError
from .models import CascadeRequest, MovieMetadata, ProviderDescriptor, ProviderResponse
from .normalizer import normalize_tmdb, normalize_omdb

log = logging.getLogger(__name__)


class TMDBClient(ProviderClient):
    """TMDB v3: multi search, then a details lookup with credits appended."""

    def __init__(self, api_key: Optional[str], settings: Optional[CascadeSettings] = None, session: Optional[requests.Session] = None):
        descriptor = ProviderDescriptor(name="TMDB", kind=ProviderKind.STRUCTURED_LOOKUP, credential=api_key)
        super().__init__(descriptor, settings, session)

    @property
    def base_url(self) -> str:
        return self.settings.tmdb_base_url.rstrip('/')

    @staticmethod
    def select_candidate(results: List[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
        """First movie wins; otherwise the first series. People are never candidates."""
        candidates = [r for r in results if isinstance(r, dict) and r.get('media_type') != 'person' and r.get('id') is not None]
        for result in candidates:
            if result.get('media_type') == 'movie':
                return result
        return candidates[0] if candidates else None

    def _search(self, query: str, deadline: Optional[float] = None) -> List[Dict[str, Any]]:
        params = {'query': query, 'api_key': self.api_key, 'language': self.settings.tmdb_language, 'include_adult': 'false'}
        response = self._http_get(f"{self.base_url}/search/multi", params, deadline)
        raise_for_provider_status(response)
        body = parse_json_body(response)
        if not isinstance(body, dict):
            raise ProviderError("unexpected search payload")
        return body.get('results') or []

    def _details(self, media_type: str, tmdb_id: Any, deadline: Optional[float] = None) -> Optional[Dict[str, Any]]:
        params = {'api_key': self.api_key, 'language': self.settings.tmdb_language, 'append_to_response': 'credits'}
        response = self._http_get(f"{self.base_url}/{media_type}/{tmdb_id}", params, deadline)
        if response.status_code == 404:
            log.debug(f"TMDB details for {media_type}/{tmdb_id} not found.")
            return None
        raise_for_provider_status(response)
        details = parse_json_body(response)
        if not isinstance(details, dict):
            raise ProviderError("unexpected details payload")
        details['media_type'] = media_type
        return details

    def fetch(self, request: CascadeRequest, deadline: Optional[float] = None) -> Optional[ProviderResponse]:
        query = strip_year_suffix(request.title)
        log.debug(f"TMDB search/multi for '{query}'")
        results = self._search(query, deadline)
        if not results:
            log.debug(f"TMDB returned no results for '{query}'.")
            return None

        candidate = self.select_candidate(results)
        if candidate is None:
            log.debug(f"TMDB results for '{query}' only contained people.")
            return None

        media_type = 'movie' if candidate.get('media_type') == 'movie' else 'tv'
        log.debug(f"TMDB selected {media_type} id={candidate['id']} for '{query}'")
        # No details request once the attempt has run out of time
        self.check_deadline(deadline)
        details = self._details(media_type, candidate['id'], deadline)
        if details is None:
            return None
        return ProviderResponse(payload=details)

    def normalize(self, payload: Any) -> MovieMetadata:
        return normalize_tmdb(payload, image_base_url=self.settings.tmdb_image_base_url, cast_limit=self.settings.cast_limit)


class OMDbClient(ProviderClient):
    """OMDb title lookup. OMDb answers HTTP 200 for most failures, so the body decides."""

    def __init__(self, api_key: Optional[str], settings: Optional[CascadeSettings] = None, session: Optional[requests.Session] = None):
        descriptor = ProviderDescriptor(name="OMDb", kind=ProviderKind.STRUCTURED_LOOKUP, credential=api_key)
        super().__init__(descriptor, settings, session)

    def fetch(self, request: CascadeRequest, deadline: Optional[float] = None) -> Optional[ProviderResponse]:
        query = strip_year_suffix(request.title)
        params = {'t': query, 'plot': 'full', 'apikey': self.api_key}
        log.debug(f"OMDb title lookup for '{query}'")
        response = self._http_get(self.settings.omdb_base_url, params, deadline)
        raise_for_provider_status(response)
        body = parse_json_body(response)
        if not isinstance(body, dict):
            raise ProviderError("unexpected payload")

        if str(body.get('Response', '')).lower() == 'true':
            return ProviderResponse(payload=body)

        error_text = str(body.get('Error') or 'unknown error')
        error_lower = error_text.lower()
        if 'not found' in error_lower:
            log.debug(f"OMDb: '{query}' not found.")
            return None
        if 'api key' in error_lower:
            raise CredentialError("invalid API key")
        raise ProviderError(error_text)

    def normalize(self, payload: Any) -> MovieMetadata:
        return normalize_omdb(payload, cast_limit=self.settings.cast_limit)
