# cinepost/cascade.py

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, List, Optional, Tuple, Union

import requests

from .api_clients import ProviderClient
from .config_manager import CascadeSettings, ConfigHelper
from .enums import AttemptOutcome, OperationKind
from .exceptions import CascadeExhaustedError, CredentialError, NoProviderConfiguredError, ProviderError, ProviderTimeout
from .genai_clients import GeminiClient, GroqClient, OpenRouterClient
from .models import AggregatedFailure, CascadeRequest, CascadeResult, ProviderAttempt, ProviderCredentials, ProviderResponse
from .movie_db_clients import TMDBClient, OMDbClient

log = logging.getLogger(__name__)

# Grace period for a timed-out worker thread to stop before the next provider starts
SETTLE_SECONDS = 1.0


def build_provider_chain(credentials: ProviderCredentials, settings: Optional[CascadeSettings] = None, session: Optional[requests.Session] = None, gemini_client: Optional[Any] = None) -> List[ProviderClient]:
    """The fixed priority order: TMDB, OMDb, Gemini, Groq, OpenRouter."""
    settings = settings or CascadeSettings()
    session = session if session is not None else requests.Session()
    return [
        TMDBClient(credentials.tmdb, settings, session),
        OMDbClient(credentials.omdb, settings, session),
        GeminiClient(credentials.gemini, settings, client=gemini_client),
        GroqClient(credentials.groq, settings, session),
        OpenRouterClient(credentials.openrouter, settings, session),
    ]


@dataclass
class CascadeOutcome:
    """Either a result or the failure report of one cascade run, never both."""
    request: CascadeRequest
    result: Optional[CascadeResult] = None
    failure: Optional[AggregatedFailure] = None

    @property
    def succeeded(self) -> bool:
        return self.result is not None

    @property
    def nothing_configured(self) -> bool:
        return self.failure is not None and not self.failure.attempts


class FallbackCascade:
    """
    Resolves a request by trying providers one at a time in priority order.

    Providers without a credential are never attempted; they only add a
    "<name> is not configured" advisory. The first provider that returns a
    usable answer ends the run. Every other outcome (not found, error, invalid
    key, timeout) is recorded and the next provider is tried.
    """
    def __init__(self, credentials: ProviderCredentials, settings: Optional[CascadeSettings] = None, providers: Optional[List[ProviderClient]] = None):
        self.credentials = credentials
        self.settings = settings or CascadeSettings()
        self.providers: List[ProviderClient] = providers if providers is not None else build_provider_chain(credentials, self.settings)

    @classmethod
    def from_config(cls, cfg_helper: ConfigHelper) -> "FallbackCascade":
        return cls(ProviderCredentials.from_config(cfg_helper), CascadeSettings.from_config(cfg_helper))

    def plan(self, request: CascadeRequest) -> Tuple[List[ProviderClient], List[str]]:
        """Returns (providers to attempt in order, not-configured advisories)."""
        eligible: List[ProviderClient] = []
        advisories: List[str] = []
        for provider in self.providers:
            if not provider.supports(request.operation):
                continue
            if not provider.is_configured:
                advisories.append(f"{provider.name} is not configured")
                continue
            eligible.append(provider)
        return eligible, advisories

    async def _fetch_before_deadline(self, provider: ProviderClient, request: CascadeRequest, timeout: float) -> Optional[ProviderResponse]:
        """
        Runs provider.fetch on a worker thread. The client gets the deadline and
        stops on its own; wait_for is only the backstop. After the backstop fires
        the worker gets SETTLE_SECONDS to notice the deadline, so the next
        provider does not start while this one is still talking to its API.
        """
        loop = asyncio.get_running_loop()
        deadline = time.monotonic() + timeout
        future = loop.run_in_executor(None, provider.fetch, request, deadline)
        try:
            return await asyncio.wait_for(asyncio.shield(future), timeout=timeout)
        except asyncio.TimeoutError:
            done, _ = await asyncio.wait({future}, timeout=SETTLE_SECONDS)
            if future in done and not future.cancelled():
                late_error = future.exception()
                if late_error is not None:
                    log.debug(f"{provider.name}: stopped after the deadline ({type(late_error).__name__}).")
            else:
                log.warning(f"{provider.name}: worker still busy {SETTLE_SECONDS:g}s after the deadline.")
            raise

    async def _attempt(self, provider: ProviderClient, request: CascadeRequest) -> Tuple[ProviderAttempt, Optional[CascadeResult]]:
        name = provider.name
        timeout = float(self.settings.provider_timeout_seconds)
        log.debug(f"Cascade: trying {name} for {request.operation.value} '{request.title}'")
        try:
            response = await self._fetch_before_deadline(provider, request, timeout)
            if response is None:
                reason = "empty answer" if request.operation.is_text_operation else "no matching title found"
                log.info(f"{name}: {reason} for '{request.title}'.")
                return ProviderAttempt(name, AttemptOutcome.NOT_FOUND, reason), None
            if request.operation is OperationKind.FETCH_FULL_METADATA:
                value: Any = provider.normalize(response.payload)
            else:
                value = str(response.payload)
        except CredentialError as e:
            log.warning(f"{name}: credential rejected: {e}")
            return ProviderAttempt(name, AttemptOutcome.CREDENTIAL_INVALID, str(e)), None
        except ProviderTimeout as e:
            log.warning(f"{name}: timed out: {e}")
            return ProviderAttempt(name, AttemptOutcome.TIMEOUT, str(e)), None
        except ProviderError as e:
            log.warning(f"{name}: failed: {e}")
            return ProviderAttempt(name, AttemptOutcome.ERROR, str(e)), None
        except asyncio.TimeoutError:
            log.warning(f"{name}: no answer within {timeout:g}s.")
            return ProviderAttempt(name, AttemptOutcome.TIMEOUT, f"no answer within {timeout:g}s"), None
        except Exception as e:
            log.warning(f"{name}: unexpected {type(e).__name__}: {e}", exc_info=True)
            return ProviderAttempt(name, AttemptOutcome.ERROR, f"unexpected error ({type(e).__name__})"), None

        log.info(f"{name} resolved {request.operation.value} for '{request.title}'.")
        success = ProviderAttempt(name, AttemptOutcome.SUCCESS, None)
        return success, CascadeResult(provider_name=name, value=value, citations=list(response.citations))

    async def run(self, request: CascadeRequest) -> CascadeOutcome:
        """Walks the plan and accumulates attempts. Never raises for provider failures."""
        eligible, advisories = self.plan(request)
        for advisory in advisories:
            log.debug(f"Cascade: {advisory}, skipping.")

        attempts: List[ProviderAttempt] = []
        for provider in eligible:
            attempt, result = await self._attempt(provider, request)
            attempts.append(attempt)
            if result is not None:
                result.attempts = attempts
                result.advisories = advisories
                return CascadeOutcome(request, result=result)

        failure = AggregatedFailure(request=request, attempts=attempts, advisories=advisories)
        return CascadeOutcome(request, failure=failure)

    async def resolve(self, operation: Union[str, OperationKind], title: str, context: str = "") -> CascadeResult:
        request = CascadeRequest(operation=OperationKind.parse(operation), title=(title or "").strip(), context=context or "")
        outcome = await self.run(request)
        if outcome.succeeded:
            return outcome.result

        failure = outcome.failure
        if outcome.nothing_configured:
            message = f"No provider is configured to {request.operation.value}. Add an API key with `cinepost setup`."
            log.error(message)
            raise NoProviderConfiguredError(message)

        log.error(f"Cascade exhausted for {request.operation.value} '{request.title}' after {len(failure.attempts)} attempt(s).")
        raise CascadeExhaustedError(failure)
