"""Chat-completion client with ordered model fallback.

Brief:
  LLMClient sends a prompt to an OpenAI-compatible chat completion endpoint
  (OpenRouter by default). Models are tried one after another in configured
  order; the first successful answer wins. When every model fails, the error
  from the last model is raised.

Inputs:
  - API key, ordered model identifiers, system prompt, optional sampling knobs.

Outputs:
  - Answer text (str) or a ModelAttemptError subclass.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence

import requests
from pydantic import BaseModel, Field

logger = logging.getLogger("dnsprompt.llm_client")

OPENROUTER_URL = "https://openrouter.ai/api/v1/chat/completions"
REQUEST_TIMEOUT_SECONDS = 30.0


class LLMClientError(Exception):
    """
    Brief: Base class for all LLM client errors.

    Inputs:
    - message: description
    - model: optional model identifier the error relates to

    Outputs:
    - Exception instance
    """

    def __init__(self, message: str, *, model: Optional[str] = None) -> None:
        super().__init__(message)
        self.model = model


class InvalidConfigurationError(LLMClientError, ValueError):
    """Client constructed with an empty API key or empty model list."""


class EmptyPromptError(LLMClientError, ValueError):
    """query() called with an empty prompt."""


class ModelAttemptError(LLMClientError):
    """
    Brief: A single model attempt failed; the next model may be tried.

    Inputs:
    - message: description
    - model: model identifier that failed
    - status: HTTP status code when one was received
    - body: response body text when captured

    Outputs:
    - Exception instance
    """

    def __init__(
        self,
        message: str,
        *,
        model: Optional[str] = None,
        status: Optional[int] = None,
        body: Optional[str] = None,
    ) -> None:
        super().__init__(message, model=model)
        self.status = status
        self.body = body


class RateLimitedError(ModelAttemptError):
    pass


class NotFoundOrPolicyRestrictedError(ModelAttemptError):
    pass


class UnauthorizedError(ModelAttemptError):
    pass


class BadRequestError(ModelAttemptError):
    pass


class UpstreamServerError(ModelAttemptError):
    pass


class UnexpectedStatusError(ModelAttemptError):
    pass


class NetworkFailureError(ModelAttemptError):
    pass


class MalformedResponseError(ModelAttemptError):
    pass


class NoChoicesError(ModelAttemptError):
    pass


class SamplingParams(BaseModel):
    """Brief: Optional sampling parameters forwarded to the completion API.

    Inputs:
      - temperature, max_tokens, top_p, top_k, frequency_penalty,
        presence_penalty: each optional; unset fields are omitted from the
        request payload.

    Outputs:
      - SamplingParams instance.
    """

    temperature: Optional[float] = Field(default=None, ge=0.0, le=2.0)
    max_tokens: Optional[int] = Field(default=None, ge=1)
    top_p: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    top_k: Optional[int] = Field(default=None, ge=0)
    frequency_penalty: Optional[float] = Field(default=None, ge=-2.0, le=2.0)
    presence_penalty: Optional[float] = Field(default=None, ge=-2.0, le=2.0)

    class Config:
        frozen = True

    def to_payload(self) -> Dict[str, Any]:
        return {k: v for k, v in self.model_dump().items() if v is not None}


# Status codes with a dedicated error class and message.
_STATUS_ERRORS = {
    429: (RateLimitedError, "Rate limit exceeded (429)"),
    404: (NotFoundOrPolicyRestrictedError, "Model not found or data policy restriction (404)"),
    401: (UnauthorizedError, "Unauthorized: invalid API key (401)"),
    500: (UpstreamServerError, "Completion API server error (500)"),
}


class LLMClient:
    """Brief: Query a chat completion API, falling back across models.

    Inputs:
      - api_key: Bearer token (non-empty).
      - models: Ordered model identifiers (non-empty); order is fallback priority.
      - system_prompt: Content of the system-role message.
      - api_url: Completion endpoint URL (overridable for tests).
      - sampling: Optional SamplingParams.
      - timeout: Per-request timeout in seconds (default 30).
      - session: Optional requests.Session-like object used for POSTs.

    Outputs:
      - LLMClient instance; configuration is read-only after construction.

    Example:
      >>> client = LLMClient("sk-test", ["model-a", "model-b"], "Be brief.")
      >>> client.models
      ('model-a', 'model-b')
    """

    def __init__(
        self,
        api_key: str,
        models: Sequence[str],
        system_prompt: str,
        *,
        api_url: str = OPENROUTER_URL,
        sampling: Optional[SamplingParams] = None,
        timeout: float = REQUEST_TIMEOUT_SECONDS,
        session: Optional[requests.Session] = None,
    ) -> None:
        if not api_key:
            raise InvalidConfigurationError("API key cannot be empty")
        models = tuple(str(m) for m in (models or ()))
        if not models:
            raise InvalidConfigurationError("Models list cannot be empty")

        self._api_key = api_key
        self._models = models
        self._system_prompt = system_prompt
        self._api_url = api_url
        self._sampling = sampling or SamplingParams()
        self._timeout = float(timeout)
        self._session = session if session is not None else requests.Session()

    @property
    def models(self) -> tuple:
        return self._models

    @property
    def system_prompt(self) -> str:
        return self._system_prompt

    @property
    def api_url(self) -> str:
        return self._api_url

    @property
    def timeout(self) -> float:
        return self._timeout

    def with_api_url(self, url: str) -> "LLMClient":
        """Return a copy of this client posting to url instead."""
        return LLMClient(
            self._api_key,
            self._models,
            self._system_prompt,
            api_url=url,
            sampling=self._sampling,
            timeout=self._timeout,
            session=self._session,
        )

    def build_payload(self, model: str, prompt: str) -> Dict[str, Any]:
        """Brief: Build the JSON request body for one model attempt.

        Inputs:
          - model: Model identifier.
          - prompt: User prompt text.

        Outputs:
          - dict: {model, messages: [system, user], ...sampling}.
        """

        payload: Dict[str, Any] = {
            "model": model,
            "messages": [
                {"role": "system", "content": self._system_prompt},
                {"role": "user", "content": prompt},
            ],
        }
        payload.update(self._sampling.to_payload())
        return payload

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }

    def query(self, prompt: str) -> str:
        """Brief: Return the first successful answer across configured models.

        Inputs:
          - prompt: Non-empty user prompt.

        Outputs:
          - str: Content of the first choice from the first model that succeeds.

        Raises:
          - EmptyPromptError: prompt is empty; no request is made.
          - ModelAttemptError: every model failed; the last model's error.
        """

        if not prompt:
            raise EmptyPromptError("Prompt cannot be empty")

        logger.debug("Querying LLM with prompt: %s", prompt)
        logger.debug("Available models for fallback: %s", list(self._models))

        last_error: Optional[ModelAttemptError] = None
        total = len(self._models)
        for index, model in enumerate(self._models):
            logger.debug("Attempting model %d/%d: %s", index + 1, total, model)
            try:
                answer = self.query_model(model, prompt)
            except ModelAttemptError as e:
                logger.error("Model %s failed: %s", model, e)
                last_error = e
                if index < total - 1:
                    logger.debug("Trying next model in fallback chain")
                else:
                    logger.error("All models exhausted")
                continue
            logger.debug("Successfully received response from model: %s", model)
            return answer

        assert last_error is not None
        raise last_error

    def query_model(self, model: str, prompt: str) -> str:
        """Brief: Make exactly one completion request against model.

        Inputs:
          - model: Model identifier.
          - prompt: User prompt text.

        Outputs:
          - str: Answer text.

        Raises:
          - ModelAttemptError subclass describing the failure.
        """

        try:
            resp = self._session.post(
                self._api_url,
                json=self.build_payload(model, prompt),
                headers=self._headers(),
                timeout=self._timeout,
            )
        except requests.RequestException as e:
            raise NetworkFailureError(
                f"Failed to send request to completion API: {e}", model=model
            ) from e

        status = int(resp.status_code)
        logger.debug("Completion API response status for %s: %d", model, status)

        if status == 200:
            return self._parse_answer(resp, model)

        if status in _STATUS_ERRORS:
            exc_cls, message = _STATUS_ERRORS[status]
            raise exc_cls(message, model=model, status=status)

        body = _safe_text(resp)
        if status == 400:
            raise BadRequestError(
                f"Bad request (400): {body}", model=model, status=status, body=body
            )
        raise UnexpectedStatusError(
            f"Unexpected status code {status}: {body}",
            model=model,
            status=status,
            body=body,
        )

    @staticmethod
    def _parse_answer(resp, model: str) -> str:
        try:
            data = resp.json()
        except ValueError as e:
            raise MalformedResponseError(
                f"Failed to parse completion API response: {e}",
                model=model,
                status=200,
            ) from e

        choices: List[Any] = data.get("choices") if isinstance(data, dict) else None
        if choices is None or not isinstance(choices, list):
            raise MalformedResponseError(
                "Completion API response has no 'choices' list",
                model=model,
                status=200,
            )
        if not choices:
            raise NoChoicesError("No choices in API response", model=model, status=200)

        try:
            content = choices[0]["message"]["content"]
        except (KeyError, TypeError, IndexError) as e:
            raise MalformedResponseError(
                f"Malformed choice in completion API response: {e}",
                model=model,
                status=200,
            ) from e
        if not isinstance(content, str):
            raise MalformedResponseError(
                "Choice content is not a string", model=model, status=200
            )
        return content


def _safe_text(resp) -> str:
    try:
        return str(resp.text)
    except Exception:  # pragma: no cover - undecodable body
        return ""
