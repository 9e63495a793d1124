"""
HTTP client for the supported LLM backends.

This module provides:
- Backend adapters (endpoint, headers, request body, text extraction)
- RetryPolicy: per-backend attempt budget, retryability and backoff delay
- LlmClient: one blocking request per attempt over a requests.Session,
  retried per policy, with every exchange written to the run log
- censor_api_key: keeps raw keys out of every surfaced message

Clock, sleep, session and idempotency-key generator are injected so tests
never touch the network or wait on real time.
"""

from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Optional

import requests
from urllib3.exceptions import ConnectTimeoutError, MaxRetryError, NewConnectionError

from specloop.config import Backend
from specloop.errors import (
    HttpQueryError,
    InvalidJsonQueryError,
    NetworkError,
    QueryError,
    ResponseParsingError,
    TransportQueryError,
)

if TYPE_CHECKING:
    from specloop.config import SpecloopConfig
    from specloop.logger import RunLogger


logger = logging.getLogger(__name__)

RETRYABLE_STATUSES = frozenset({408, 429, 500, 502, 503, 504})


def censor_api_key(text: str, api_key: str) -> str:
    """Replace every occurrence of ``api_key`` in ``text`` with a short hint."""
    if not api_key:
        return text
    hint = f"...{api_key[-4:]}" if len(api_key) > 8 else "..."
    return text.replace(api_key, hint)


def is_connection_setup_failure(error: requests.exceptions.ConnectionError) -> bool:
    """
    True when no connection to the server was ever established.

    A connection dropped after the request went out (reset, aborted mid-response)
    returns False: the server may already be processing the request.
    """
    reason = error.args[0] if error.args else None
    if isinstance(reason, MaxRetryError):
        reason = reason.reason
    return isinstance(reason, (NewConnectionError, ConnectTimeoutError))


def parse_retry_after(value: Optional[str]) -> Optional[float]:
    """Parse a numeric Retry-After header (seconds). HTTP dates are ignored."""
    if value is None:
        return None
    try:
        seconds = float(value.strip())
    except ValueError:
        return None
    return seconds if seconds >= 0 else None


# =============================================================================
# Backends
# =============================================================================


class GeminiBackend:
    """Google generateContent API."""

    supports_idempotency_keys = False
    base_url = "https://generativelanguage.googleapis.com/v1beta/models"

    def endpoint(self, model: str) -> str:
        return f"{self.base_url}/{model}:generateContent"

    def headers(self, api_key: str, idempotency_key: Optional[str]) -> dict[str, str]:
        return {"Content-Type": "application/json", "x-goog-api-key": api_key}

    def request_body(self, prompt: str, model: str) -> dict[str, Any]:
        return {"contents": [{"parts": [{"text": prompt}]}]}

    def extract_text(self, payload: Any) -> str:
        """
        Join the text parts of the first candidate.

        Raises:
            ResponseParsingError: If there is no candidate or no text part.
        """
        candidates = payload.get("candidates") if isinstance(payload, dict) else None
        if not isinstance(candidates, list) or not candidates:
            raise ResponseParsingError("Gemini response contained no candidates.")

        first = candidates[0] if isinstance(candidates[0], dict) else {}
        content = first.get("content")
        parts = content.get("parts") if isinstance(content, dict) else None
        texts = [
            part["text"]
            for part in parts or []
            if isinstance(part, dict) and isinstance(part.get("text"), str)
        ]
        if not texts:
            raise ResponseParsingError("Gemini response contained no text parts.")
        return "".join(texts)


class OpenAiBackend:
    """OpenAI chat completions API."""

    supports_idempotency_keys = True
    url = "https://api.openai.com/v1/chat/completions"

    def endpoint(self, model: str) -> str:
        return self.url

    def headers(self, api_key: str, idempotency_key: Optional[str]) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {api_key}",
        }
        if idempotency_key:
            headers["Idempotency-Key"] = idempotency_key
        return headers

    def request_body(self, prompt: str, model: str) -> dict[str, Any]:
        return {"model": model, "messages": [{"role": "user", "content": prompt}]}

    def extract_text(self, payload: Any) -> str:
        """
        Return ``choices[0].message.content``.

        Raises:
            ResponseParsingError: If that field is missing or not a string.
        """
        try:
            content = payload["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError):
            content = None
        if not isinstance(content, str):
            raise ResponseParsingError(
                "OpenAI response is missing choices[0].message.content."
            )
        return content


BACKENDS: dict[Backend, Any] = {
    Backend.GEMINI: GeminiBackend(),
    Backend.GPT: OpenAiBackend(),
}


# =============================================================================
# Retry policy
# =============================================================================


@dataclass(frozen=True)
class RetryPolicy:
    """
    Bounded exponential backoff for one logical query.

    Attributes:
        max_attempts: Total attempts, including the first.
        base_delay: Delay before the second attempt, in seconds.
        max_delay: Cap on the exponential part of the delay.
        retry_timeouts: Whether transport timeouts may be retried. Only safe
            when the backend deduplicates requests by idempotency key.
    """

    max_attempts: int
    base_delay: float
    max_delay: float
    retry_timeouts: bool = False

    @classmethod
    def for_backend(cls, backend: Backend) -> RetryPolicy:
        if backend is Backend.GPT:
            return cls(max_attempts=6, base_delay=0.3, max_delay=10.0, retry_timeouts=True)
        return cls(max_attempts=4, base_delay=0.4, max_delay=8.0, retry_timeouts=False)

    def is_retryable(self, error: QueryError) -> bool:
        if isinstance(error, HttpQueryError):
            return error.status in RETRYABLE_STATUSES
        if isinstance(error, TransportQueryError):
            if error.is_timeout and not error.is_connect:
                return self.retry_timeouts
            return error.is_connect
        return False

    def backoff_delay(
        self,
        attempt: int,
        retry_after: Optional[float] = None,
        clock_ns: Callable[[], int] = time.time_ns,
    ) -> float:
        """
        Delay to wait after failed attempt number ``attempt`` (1-based).

        ``min(base * 2**(attempt-1), max)`` plus jitter in ``[0, base/2)``,
        raised to ``retry_after`` when the server asked for longer.
        """
        exponential = min(self.base_delay * (2 ** (attempt - 1)), self.max_delay)
        jitter_span_ns = int(self.base_delay / 2 * 1_000_000_000)
        jitter = (clock_ns() % jitter_span_ns) / 1_000_000_000 if jitter_span_ns > 0 else 0.0
        delay = exponential + jitter
        if retry_after is not None:
            delay = max(delay, retry_after)
        return delay


# =============================================================================
# Client
# =============================================================================


class LlmClient:
    """
    Blocking LLM client.

    Usage:
        client = LlmClient(Backend.GEMINI, api_key, run_logger=run_logger)
        text = client.query(prompt, "1-initial-query")
    """

    def __init__(
        self,
        backend: Backend,
        api_key: str,
        model: Optional[str] = None,
        session: Optional[requests.Session] = None,
        run_logger: Optional[RunLogger] = None,
        connect_timeout: float = 15.0,
        read_timeout: float = 600.0,
        sleep: Callable[[float], None] = time.sleep,
        clock_ns: Callable[[], int] = time.time_ns,
        idempotency_key_factory: Callable[[], str] = lambda: uuid.uuid4().hex,
    ) -> None:
        self.backend = backend
        self.api_key = api_key
        self.model = model or backend.value
        self.session = session or requests.Session()
        self.run_logger = run_logger
        self.timeout = (connect_timeout, read_timeout)
        self._adapter = BACKENDS[backend]
        self._sleep = sleep
        self._clock_ns = clock_ns
        self._new_idempotency_key = idempotency_key_factory

    def _censor(self, text: str) -> str:
        return censor_api_key(text, self.api_key)

    def send_once(self, url: str, headers: dict[str, str], body: dict[str, Any]) -> Any:
        """
        Perform one HTTP attempt.

        Returns:
            The decoded JSON payload of a 2xx response.

        Raises:
            QueryError: Classified failure, with the API key censored.
        """
        try:
            response = self.session.post(url, headers=headers, json=body, timeout=self.timeout)
        except requests.exceptions.ConnectTimeout as e:
            raise TransportQueryError(self._censor(str(e)), is_connect=True, is_timeout=True)
        except requests.exceptions.ConnectionError as e:
            if is_connection_setup_failure(e):
                raise TransportQueryError(self._censor(str(e)), is_connect=True)
            # Dropped after the request went out; classed with read timeouts.
            raise TransportQueryError(self._censor(str(e)), is_timeout=True)
        except requests.exceptions.Timeout as e:
            raise TransportQueryError(self._censor(str(e)), is_timeout=True)
        except requests.exceptions.RequestException as e:
            raise TransportQueryError(self._censor(str(e)))

        if not 200 <= response.status_code < 300:
            raise HttpQueryError(
                response.status_code,
                self._censor(response.text),
                retry_after=parse_retry_after(response.headers.get("Retry-After")),
            )

        try:
            return response.json()
        except ValueError as e:
            raise InvalidJsonQueryError(self._censor(response.text), self._censor(str(e)))

    def query_with_retries(
        self, url: str, headers: dict[str, str], body: dict[str, Any]
    ) -> Any:
        """
        Send a request, retrying per the backend's RetryPolicy.

        Raises:
            NetworkError: When attempts run out or the failure is not retryable.
        """
        policy = RetryPolicy.for_backend(self.backend)
        attempt = 1
        while True:
            try:
                return self.send_once(url, headers, body)
            except QueryError as e:
                if attempt >= policy.max_attempts or not policy.is_retryable(e):
                    logger.error(
                        "LLM request failed on attempt %d/%d: %s",
                        attempt, policy.max_attempts, e,
                    )
                    raise e.to_network_error() from e

                delay = policy.backoff_delay(
                    attempt,
                    retry_after=getattr(e, "retry_after", None),
                    clock_ns=self._clock_ns,
                )
                logger.warning(
                    "LLM request attempt %d/%d failed (%s); retrying in %.2fs",
                    attempt, policy.max_attempts, e.error_type.name, delay,
                )
                self._sleep(delay)
                attempt += 1

    def query(self, prompt: str, log_prefix: str) -> str:
        """
        Send ``prompt`` and return the model's text.

        Writes ``<log_prefix>-query.txt``, ``-query.json``, ``-response.json``
        and ``-response.txt`` to the run log when a logger is attached.

        Raises:
            NetworkError: If the request ultimately fails.
            ResponseParsingError: If the payload has no text where expected.
        """
        url = self._adapter.endpoint(self.model)
        body = self._adapter.request_body(prompt, self.model)
        idempotency_key = (
            self._new_idempotency_key() if self._adapter.supports_idempotency_keys else None
        )
        headers = self._adapter.headers(self.api_key, idempotency_key)

        if self.run_logger is not None:
            self.run_logger.log_text(f"{log_prefix}-query.txt", prompt)
            self.run_logger.log_json(f"{log_prefix}-query.json", {"url": url, "body": body})

        started = time.monotonic()
        payload: Any = None
        try:
            payload = self.query_with_retries(url, headers, body)
            text = self._adapter.extract_text(payload)
        except (NetworkError, ResponseParsingError) as e:
            elapsed_ms = int((time.monotonic() - started) * 1000)
            self._log_response(log_prefix, payload, elapsed_ms, error=str(e))
            raise

        elapsed_ms = int((time.monotonic() - started) * 1000)
        self._log_response(log_prefix, payload, elapsed_ms, text=text)
        return text

    def _log_response(
        self,
        log_prefix: str,
        payload: Any,
        elapsed_ms: int,
        text: Optional[str] = None,
        error: Optional[str] = None,
    ) -> None:
        if self.run_logger is None:
            return
        if error is not None:
            record: dict[str, Any] = {"error": self._censor(error)}
            if payload is not None:
                record["payload"] = payload
            record["totalResponseTime"] = elapsed_ms
            self.run_logger.log_json(f"{log_prefix}-response.json", record)
            self.run_logger.log_text(f"{log_prefix}-response.txt", f"ERROR\n{self._censor(error)}")
            self.run_logger.error("llm_query_failed", {"log_prefix": log_prefix, "error": self._censor(error)})
            return

        record = dict(payload) if isinstance(payload, dict) else {"payload": payload}
        record["totalResponseTime"] = elapsed_ms
        self.run_logger.log_json(f"{log_prefix}-response.json", record)
        self.run_logger.log_text(f"{log_prefix}-response.txt", text or "")
        self.run_logger.info(
            "llm_query_complete",
            {"log_prefix": log_prefix, "model": self.model, "totalResponseTime": elapsed_ms},
        )


def create_client(
    config: SpecloopConfig,
    run_logger: Optional[RunLogger] = None,
    session: Optional[requests.Session] = None,
) -> LlmClient:
    """Build an LlmClient from loaded configuration."""
    return LlmClient(
        backend=config.llm.backend,
        api_key=config.llm.api_key,
        model=config.llm.model,
        session=session,
        run_logger=run_logger,
        connect_timeout=config.llm.connect_timeout_seconds,
        read_timeout=config.llm.timeout_seconds,
    )
