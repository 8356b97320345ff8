"""
Failure taxonomy shared by the AI provider, the PubChem client and the
orchestrator. Providers raise these; the orchestrator turns them into a
status message and a degraded flag.
"""


class ChemistryServiceError(Exception):
    """Base class for every provider-side failure."""

    def __init__(self, message: str = "", provider: str = ""):
        super().__init__(message)
        self.provider = provider


class RateLimited(ChemistryServiceError):
    """Transient quota signal; the only error the backoff loop retries."""


class ProviderUnavailable(ChemistryServiceError):
    """Network error or non-2xx status."""


class MalformedResponse(ProviderUnavailable):
    """The provider answered, but not with anything we can decode."""


class NotFound(ChemistryServiceError):
    """The provider has no match for the query."""


class NoFallbackReference(ChemistryServiceError):
    """Structural analysis failed and there is no name or SMILES to look up."""
