from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import AggregatedFailure


class CinepostError(Exception):
    """Base class for application-specific errors."""
    pass

class ConfigError(CinepostError):
    """Errors related to configuration loading or validation."""
    pass

class ProviderError(CinepostError):
    """A single provider attempt failed (HTTP status, malformed payload, network)."""
    pass

class CredentialError(ProviderError):
    """The provider rejected the configured API key."""
    pass

class ProviderTimeout(ProviderError):
    """The provider did not answer within the per-attempt timeout."""
    pass

class CascadeError(CinepostError):
    """Errors raised by the provider cascade as a whole."""
    pass

class NoProviderConfiguredError(CascadeError):
    """No provider eligible for the operation has a credential configured."""
    pass

class CascadeExhaustedError(CascadeError):
    """Every attempted provider failed or found nothing."""

    def __init__(self, failure: "AggregatedFailure"):
        self.failure = failure
        super().__init__(failure.render())
