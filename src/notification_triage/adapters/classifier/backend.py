"""Classification backend adapter.

This module implements the ClassifierProvider protocol for the
classification backend: the request is POSTed in the fixed wire shape and
the answer arrives in a ``{success, data, error, timestamp}`` envelope.

- Responses are validated against Pydantic models
- ``success: false`` envelopes raise ClassifierRejected (retried by the client)
- Unparseable responses raise ClassifierProtocolError (not retried)
"""

from __future__ import annotations

from typing import Literal

import httpx
import structlog
from pydantic import BaseModel, Field, ValidationError

from ...config.schema import BackendClassifierConfig
from ...models.classification import ClassificationRequest, ClassificationResult
from ...models.enums import Priority
from ...utils.async_helpers import ClassifierProtocolError, ClassifierRejected

log = structlog.get_logger()


class ClassificationData(BaseModel):
    """Validated classification payload of a successful envelope."""

    should_notify: bool
    confidence: int = Field(ge=0, le=100)
    reasoning: str
    category: str = Field(min_length=1)
    priority: Literal["high", "medium", "low"]
    tags: list[str]


class EnvelopeError(BaseModel):
    """Error details of a failed envelope."""

    code: str | None = None
    message: str = "unknown error"


class ClassificationEnvelope(BaseModel):
    """Response envelope returned by the classification backend."""

    success: bool
    data: ClassificationData | None = None
    error: EnvelopeError | None = None
    timestamp: str | None = None


class BackendClassifierAdapter:
    """Classifier adapter for the classification backend HTTP API.

    Example:
        config = BackendClassifierConfig(base_url="https://triage.internal")
        adapter = BackendClassifierAdapter(config)

        result = await adapter.classify(request)
        await adapter.aclose()
    """

    def __init__(
        self,
        config: BackendClassifierConfig,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the backend adapter.

        Args:
            config: Backend-specific configuration.
            client: HTTP client to use. If None, creates one for ``base_url``.
        """
        self._config = config
        headers = {"Content-Type": "application/json"}
        if config.api_key:
            headers["Authorization"] = f"Bearer {config.api_key}"
        self._client = client or httpx.AsyncClient(base_url=config.base_url, headers=headers)

    @property
    def name(self) -> str:
        return "backend"

    @property
    def endpoint(self) -> str:
        return f"{self._config.base_url}{self._config.classify_path}"

    async def classify(self, request: ClassificationRequest) -> ClassificationResult:
        """POST the request and parse the envelope.

        Raises:
            httpx.TransportError: If the backend cannot be reached
            httpx.HTTPStatusError: If the backend answers with an error status
            ClassifierRejected: If the envelope reports ``success: false``
            ClassifierProtocolError: If the response cannot be parsed
        """
        response = await self._client.post(self.endpoint, json=request.to_payload())
        response.raise_for_status()
        return self.parse_response(response)

    @staticmethod
    def parse_response(response: httpx.Response) -> ClassificationResult:
        """Convert a backend response into a classification result."""
        try:
            envelope = ClassificationEnvelope.model_validate_json(response.content)
        except ValidationError as e:
            log.error("backend_response_invalid", error_count=e.error_count())
            raise ClassifierProtocolError(f"Invalid classification response: {e}") from e

        if not envelope.success:
            error = envelope.error or EnvelopeError()
            log.warning("backend_classification_rejected", code=error.code, message=error.message)
            raise ClassifierRejected(f"Classification failed: {error.message}", code=error.code)

        if envelope.data is None:
            raise ClassifierProtocolError("Successful classification response carries no data")

        data = envelope.data
        return ClassificationResult(
            should_notify=data.should_notify,
            confidence=data.confidence,
            category=data.category.lower(),
            priority=Priority(data.priority),
            reasoning=data.reasoning,
            tags=frozenset(data.tags),
        )

    async def health_check(self) -> bool:
        try:
            response = await self._client.get(f"{self._config.base_url}{self._config.health_path}")
        except httpx.HTTPError as e:
            log.warning("backend_health_check_failed", error=str(e))
            return False
        return response.is_success

    async def aclose(self) -> None:
        await self._client.aclose()
