"""Abstract interface for remote message classifiers."""

from typing import Protocol

from ..models.classification import ClassificationRequest, ClassificationResult


class ClassifierProvider(Protocol):
    """Abstract interface for remote classification services.

    This protocol defines the contract that classifier adapters (the
    classification backend, an OpenAI-compatible completions endpoint)
    must implement. Adapters make exactly one remote attempt per call;
    retry and timeout policy belong to ``ClassificationClient``.
    """

    @property
    def name(self) -> str:
        """Short provider name used in logs and metrics."""
        ...

    @property
    def endpoint(self) -> str:
        """URL the provider sends classification requests to."""
        ...

    async def classify(self, request: ClassificationRequest) -> ClassificationResult:
        """
        Classify one message for one user.

        Args:
            request: Message, user settings and channel metadata

        Returns:
            The classification result

        Raises:
            httpx.TransportError: If the service cannot be reached
            httpx.HTTPStatusError: If the service answers with an error status
            ClassifierRejected: If the service reports an application-level failure
            ClassifierProtocolError: If the response cannot be parsed
        """
        ...

    async def health_check(self) -> bool:
        """
        Check whether the service is reachable.

        Returns:
            True if the service answered its health probe
        """
        ...

    async def aclose(self) -> None:
        """Release the underlying HTTP client."""
        ...
