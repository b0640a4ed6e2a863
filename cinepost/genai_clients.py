# cinepost/genai_clients.py

import json
import logging
import re
from typing import Any, Dict, List, Optional, Tuple

import requests
from google import genai
from google.genai import errors as genai_errors
from google.genai import types as genai_types

from .api_clients import ProviderClient, INVALID_KEY_MARKERS, raise_for_provider_status, parse_json_body
from .config_manager import CascadeSettings
from .enums import OperationKind, ProviderKind
from .exceptions import CredentialError, ProviderError
from .models import CascadeRequest, Citation, MovieMetadata, ProviderDescriptor, ProviderResponse
from .normalizer import normalize_generative
from .prompt_builder import build_prompt, wants_json

log = logging.getLogger(__name__)

_CODE_FENCE_RE = re.compile(r'^```(?:json)?\s*(.*?)\s*```$', re.DOTALL | re.IGNORECASE)


def extract_json_object(text: str) -> Dict[str, Any]:
    """
    Parses the JSON object out of a model answer. Accepts a bare object, one
    wrapped in ``` fences, or one embedded in surrounding prose (grounded
    answers cannot use JSON mode and often add a sentence or two).
    """
    candidate = (text or '').strip()
    fence_match = _CODE_FENCE_RE.match(candidate)
    if fence_match:
        candidate = fence_match.group(1)
    try:
        parsed = json.loads(candidate)
    except ValueError:
        start, end = candidate.find('{'), candidate.rfind('}')
        if start == -1 or end <= start:
            raise ProviderError("malformed JSON in model response")
        try:
            parsed = json.loads(candidate[start:end + 1])
        except ValueError as e:
            raise ProviderError("malformed JSON in model response") from e
    if not isinstance(parsed, dict):
        raise ProviderError("model response JSON is not an object")
    return parsed


class GenerativeClient(ProviderClient):
    """Prompt-driven provider. Subclasses implement _generate(prompt, json_mode, grounded)."""

    def _generate(self, prompt: str, json_mode: bool, grounded: bool, deadline: Optional[float] = None) -> Tuple[str, List[Citation]]:
        raise NotImplementedError

    def _use_grounding(self, request: CascadeRequest) -> bool:
        return False

    def fetch(self, request: CascadeRequest, deadline: Optional[float] = None) -> Optional[ProviderResponse]:
        prompt = build_prompt(request)
        grounded = self._use_grounding(request)
        # Search grounding and JSON response mode cannot be combined
        json_mode = wants_json(request) and not grounded
        log.debug(f"{self.name}: {request.operation.value} (json_mode={json_mode}, grounded={grounded})")

        self.check_deadline(deadline)
        text, citations = self._generate(prompt, json_mode, grounded, deadline)
        if not text or not text.strip():
            log.debug(f"{self.name} returned an empty answer.")
            return None
        if request.operation is OperationKind.FETCH_FULL_METADATA:
            return ProviderResponse(payload=extract_json_object(text), citations=citations)
        return ProviderResponse(payload=text.strip(), citations=citations)

    def normalize(self, payload: Any) -> MovieMetadata:
        return normalize_generative(payload)


class GeminiClient(GenerativeClient):
    """Google Gemini through the google-genai SDK, optionally grounded with Google Search."""

    def __init__(self, api_key: Optional[str], settings: Optional[CascadeSettings] = None, client: Optional[Any] = None):
        descriptor = ProviderDescriptor(name="Gemini", kind=ProviderKind.GENERATIVE_PROMPT, credential=api_key, supports_grounding=True)
        super().__init__(descriptor, settings)
        self._client = client

    @property
    def client(self) -> Any:
        if self._client is None:
            http_options = genai_types.HttpOptions(timeout=int(self.request_timeout * 1000))
            self._client = genai.Client(api_key=self.api_key, http_options=http_options)
        return self._client

    def _use_grounding(self, request: CascadeRequest) -> bool:
        return bool(self.settings.gemini_use_grounding) and request.operation is OperationKind.FETCH_FULL_METADATA

    def _build_config(self, json_mode: bool, grounded: bool, deadline: Optional[float] = None) -> genai_types.GenerateContentConfig:
        config_kwargs: Dict[str, Any] = {}
        if grounded:
            config_kwargs['tools'] = [genai_types.Tool(google_search=genai_types.GoogleSearch())]
        elif json_mode:
            config_kwargs['response_mime_type'] = 'application/json'
        if self.settings.gemini_thinking_budget:
            config_kwargs['thinking_config'] = genai_types.ThinkingConfig(thinking_budget=self.settings.gemini_thinking_budget)
        if deadline is not None:
            # Per-request override: only what is left of the attempt
            config_kwargs['http_options'] = genai_types.HttpOptions(timeout=int(self.time_left(deadline) * 1000))
        return genai_types.GenerateContentConfig(**config_kwargs)

    @staticmethod
    def extract_citations(response: Any) -> List[Citation]:
        citations: List[Citation] = []
        seen = set()
        candidates = getattr(response, 'candidates', None) or []
        if not candidates:
            return citations
        grounding = getattr(candidates[0], 'grounding_metadata', None)
        for chunk in getattr(grounding, 'grounding_chunks', None) or []:
            web = getattr(chunk, 'web', None)
            uri = getattr(web, 'uri', None)
            if not uri or uri in seen:
                continue
            seen.add(uri)
            citations.append(Citation(uri=uri, title=getattr(web, 'title', None)))
        return citations

    def _generate(self, prompt: str, json_mode: bool, grounded: bool, deadline: Optional[float] = None) -> Tuple[str, List[Citation]]:
        try:
            response = self.client.models.generate_content(
                model=self.settings.gemini_model,
                contents=prompt,
                config=self._build_config(json_mode, grounded, deadline),
            )
        except genai_errors.APIError as e:
            message_lower = str(getattr(e, 'message', '') or e).lower()
            if e.code in (401, 403) or any(marker in message_lower for marker in INVALID_KEY_MARKERS):
                raise CredentialError(f"invalid API key (status {e.code})") from e
            raise ProviderError(f"provider returned status {e.code}: {getattr(e, 'message', None) or e}") from e

        text = getattr(response, 'text', None) or ''
        citations = self.extract_citations(response) if grounded else []
        if citations:
            log.debug(f"Gemini grounding returned {len(citations)} source(s).")
        return text, citations


class OpenAICompatibleClient(GenerativeClient):
    """Any provider exposing an OpenAI-style /chat/completions endpoint with Bearer auth."""

    def __init__(self, name: str, api_key: Optional[str], base_url: str, model: str, settings: Optional[CascadeSettings] = None, session: Optional[requests.Session] = None):
        descriptor = ProviderDescriptor(name=name, kind=ProviderKind.GENERATIVE_PROMPT, credential=api_key)
        super().__init__(descriptor, settings, session)
        self.base_url = base_url.rstrip('/')
        self.model = model

    def _headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"}

    def _generate(self, prompt: str, json_mode: bool, grounded: bool, deadline: Optional[float] = None) -> Tuple[str, List[Citation]]:
        payload: Dict[str, Any] = {
            "model": self.model,
            "messages": [{"role": "user", "content": prompt}],
        }
        if json_mode:
            payload["response_format"] = {"type": "json_object"}

        response = self._http_post(f"{self.base_url}/chat/completions", payload, headers=self._headers(), deadline=deadline)
        raise_for_provider_status(response)
        data = parse_json_body(response)
        if not isinstance(data, dict):
            raise ProviderError("unexpected completion payload")

        # Some gateways answer 200 with an error object instead of choices
        error = data.get('error')
        if error:
            message = error.get('message') if isinstance(error, dict) else str(error)
            code = error.get('code') if isinstance(error, dict) else None
            if code == 401 or any(marker in str(message).lower() for marker in INVALID_KEY_MARKERS):
                raise CredentialError("invalid API key")
            raise ProviderError(f"provider reported an error: {message}")

        choices = data.get('choices') or []
        if not choices:
            return '', []
        content = (choices[0].get('message') or {}).get('content') or ''
        return content, []


class GroqClient(OpenAICompatibleClient):
    def __init__(self, api_key: Optional[str], settings: Optional[CascadeSettings] = None, session: Optional[requests.Session] = None):
        settings = settings or CascadeSettings()
        super().__init__("Groq", api_key, settings.groq_base_url, settings.groq_model, settings, session)


class OpenRouterClient(OpenAICompatibleClient):
    def __init__(self, api_key: Optional[str], settings: Optional[CascadeSettings] = None, session: Optional[requests.Session] = None):
        settings = settings or CascadeSettings()
        super().__init__("OpenRouter", api_key, settings.openrouter_base_url, settings.openrouter_model, settings, session)

    def _headers(self) -> Dict[str, str]:
        headers = super()._headers()
        headers["X-Title"] = "cinepost"
        return headers
