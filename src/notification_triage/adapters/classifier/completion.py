"""OpenAI-compatible chat-completions classifier adapter.

This module implements the ClassifierProvider protocol on top of any
endpoint that speaks the OpenAI ``/v1/chat/completions`` API. The model is
asked for a single letter, ``y`` or ``n``; everything else about the result
is derived locally from the message text.

Security features:
- Secret redaction BEFORE the message leaves the process (fail-closed)
- Output validation against Pydantic schema
- Structured prompts with clear system/user boundaries

When the model answers with anything but a clean ``y``/``n`` the answer is
passed through a small "extract y/n" completion, a bounded number of times.
An answer that never converges means no notification.
"""

from __future__ import annotations

import random

import httpx
import structlog
from pydantic import BaseModel, Field, ValidationError

from ...config.schema import CompletionClassifierConfig
from ...core.derivation import build_user_description, derive_result
from ...models.classification import ClassificationRequest, ClassificationResult
from ...utils.async_helpers import ClassifierProtocolError, ClassifierUnavailable
from ...utils.security import RedactionError, SecretRedactor

log = structlog.get_logger()

COMPLETIONS_PATH = "/v1/chat/completions"
MODELS_PATH = "/v1/models"

CLASSIFY_SYSTEM_PROMPT = """\
You decide whether a user should receive a notification for a chat message.
Messages come from an ongoing conversation; consider who is talking to whom
and what the topic is. Timestamps and mentions of other people may help.

The user provides:
1. A description of the messages they want to be notified about
2. The message to classify

If you are unsure whether the message matches the description, answer "y".

Answer with the single letter "y" if the user should be notified, or "n" if
not. Any other output is rejected."""

CLEANUP_SYSTEM_PROMPT = (
    'The given text should have been just "y" or "n" but contains extra '
    'information. Reply with only the letter "y" or "n" it stands for.'
)


class CompletionMessage(BaseModel):
    role: str = "assistant"
    content: str | None = None


class CompletionChoice(BaseModel):
    message: CompletionMessage


class CompletionResponse(BaseModel):
    """Validated subset of a chat-completions response."""

    choices: list[CompletionChoice] = Field(min_length=1)


def normalize_decision(text: str | None) -> bool | None:
    """Return True/False for a canonical ``y``/``n`` answer, else None."""
    if text is None:
        return None
    answer = text.strip().lower()
    if answer == "y":
        return True
    if answer == "n":
        return False
    return None


class CompletionClassifierAdapter:
    """Classifier adapter for OpenAI-compatible completion endpoints.

    Example:
        config = CompletionClassifierConfig(api_key="sk-...", model="gpt-4o-mini")
        adapter = CompletionClassifierAdapter(config)

        result = await adapter.classify(request)
    """

    def __init__(
        self,
        config: CompletionClassifierConfig,
        client: httpx.AsyncClient | None = None,
        redactor: SecretRedactor | None = None,
        rng: random.Random | None = None,
    ) -> None:
        """Initialize the completion adapter.

        Args:
            config: Completion-specific configuration.
            client: HTTP client to use. If None, creates one.
            redactor: Secret redactor. If None, creates default.
            rng: Random source for confidence jitter.
        """
        self._config = config
        self._redactor = redactor or SecretRedactor()
        self._rng = rng or random.Random()
        self._client = client or httpx.AsyncClient(
            headers={
                "Authorization": f"Bearer {config.api_key}",
                "Content-Type": "application/json",
            },
        )

    @property
    def name(self) -> str:
        return "completion"

    @property
    def endpoint(self) -> str:
        return f"{self._config.base_url}{COMPLETIONS_PATH}"

    @property
    def model_name(self) -> str:
        """Return the model identifier being used."""
        return self._config.model

    def _redact_text(self, text: str) -> str:
        """Redact secrets from text, failing closed on error.

        Raises:
            ClassifierUnavailable: If redaction fails; nothing is sent.
        """
        try:
            kinds = self._redactor.detect(text)
            redacted = self._redactor.redact(text) if kinds else text
        except RedactionError as e:
            log.error("redaction_failed_blocking_classifier_call", error=str(e))
            raise ClassifierUnavailable(f"Cannot send to classifier: redaction failed: {e}") from e

        if kinds:
            log.info("secrets_redacted_from_prompt", kinds=kinds)
        return redacted

    def build_user_prompt(self, request: ClassificationRequest) -> str:
        message = request.message
        content = self._redact_text(message.text)
        return (
            "User Description:\n"
            f"{build_user_description(request.user_settings)}\n\n"
            "Message to Classify:\n"
            f"- ({message.timestamp.isoformat()}) {message.user_id}: {content}"
        )

    async def classify(self, request: ClassificationRequest) -> ClassificationResult:
        """Ask the model for a y/n decision and derive the full result.

        Raises:
            httpx.TransportError: If the endpoint cannot be reached
            httpx.HTTPStatusError: If the endpoint answers with an error status
            ClassifierProtocolError: If the response cannot be parsed
        """
        answer = await self._complete(
            model=self._config.model,
            system_prompt=CLASSIFY_SYSTEM_PROMPT,
            user_content=self.build_user_prompt(request),
            max_tokens=self._config.max_tokens,
        )
        should_notify = await self.resolve_decision(answer)
        return derive_result(request.message.text, should_notify, self._rng)

    async def resolve_decision(self, answer: str) -> bool:
        """Turn a model answer into a decision, cleaning it up if needed.

        At most ``max_cleanup_attempts`` cleanup calls are made. If none of
        them yields a canonical answer the decision is False.
        """
        decision = normalize_decision(answer)
        attempts = 0
        while decision is None and attempts < self._config.max_cleanup_attempts:
            attempts += 1
            log.debug("classifier_cleanup", attempt=attempts, answer=answer[:100])
            answer = await self._clean_up(answer)
            decision = normalize_decision(answer)

        if decision is None:
            log.warning("classifier_answer_ambiguous", cleanup_attempts=attempts)
            return False
        return decision

    async def _clean_up(self, answer: str) -> str:
        try:
            return await self._complete(
                model=self._config.cleanup_model,
                system_prompt=CLEANUP_SYSTEM_PROMPT,
                user_content=answer,
                max_tokens=self._config.cleanup_max_tokens,
            )
        except (httpx.HTTPError, ClassifierProtocolError) as e:
            log.warning("classifier_cleanup_failed", error=str(e))
            return "y" if "y" in answer.lower() else "n"

    async def _complete(
        self,
        model: str,
        system_prompt: str,
        user_content: str,
        max_tokens: int,
    ) -> str:
        response = await self._client.post(
            self.endpoint,
            json={
                "model": model,
                "messages": [
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_content},
                ],
                "max_tokens": max_tokens,
                "temperature": self._config.temperature,
            },
        )
        response.raise_for_status()

        try:
            parsed = CompletionResponse.model_validate_json(response.content)
        except ValidationError as e:
            log.error("completion_response_invalid", model=model, error_count=e.error_count())
            raise ClassifierProtocolError(f"Invalid completion response: {e}") from e

        return parsed.choices[0].message.content or ""

    async def health_check(self) -> bool:
        try:
            response = await self._client.get(f"{self._config.base_url}{MODELS_PATH}")
        except httpx.HTTPError as e:
            log.warning("completion_health_check_failed", error=str(e))
            return False
        return response.is_success

    async def aclose(self) -> None:
        await self._client.aclose()
