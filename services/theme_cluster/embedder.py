"""
Topic Embedding Service
Generates embeddings for short topic strings in one batched request

Supports two backends:
1. OpenAI-compatible /v1/embeddings endpoint (default)
2. Ollama /api/embed
"""

import json
import math
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

import httpx
import structlog

from .config import parse_float_env

logger = structlog.get_logger()

BUDGET_TIERS = ("low", "normal", "high")

DEFAULT_OLLAMA_URL = "http://localhost:11434"
DEFAULT_OLLAMA_EMBED_MODEL = "qwen3-embedding:8b"

SNIPPET_MAX_CHARS = 800
DETAIL_MAX_CHARS = 300


class EmbeddingsError(Exception):
    """Base error for the embedding client"""


class EmbeddingsConfigError(EmbeddingsError):
    """Client is disabled or misconfigured"""


class EmbeddingsProviderError(EmbeddingsError):
    """Embedding request failed or returned an unusable payload"""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        endpoint: Optional[str] = None,
        model: Optional[str] = None,
        request_id: Optional[str] = None,
        response_snippet: Optional[str] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.endpoint = endpoint
        self.model = model
        self.request_id = request_id
        self.response_snippet = response_snippet


@dataclass(frozen=True)
class EmbeddingModelRef:
    """Which provider/model/endpoint a request goes to"""
    provider: str
    model: str
    endpoint: str


@dataclass
class EmbedCallResult:
    """Vectors aligned with input order, plus usage for run reports"""
    vectors: list[list[float]]
    input_tokens: int = 0
    cost_estimate_credits: float = 0.0
    provider: str = ""
    model: str = ""
    endpoint: str = ""
    raw_response: Any = field(default=None, repr=False)


class EmbeddingsClient(ABC):
    """Interface the theme orchestrator depends on."""

    @abstractmethod
    def choose_model(self, tier: str) -> EmbeddingModelRef:
        """Select the embedding model for a budget tier."""

    @abstractmethod
    async def embed(self, ref: EmbeddingModelRef, texts: list[str]) -> EmbedCallResult:
        """
        Embed all texts in one batched call.

        Args:
            ref: Model reference from choose_model()
            texts: Strings to embed

        Returns:
            EmbedCallResult with vectors in input order
        """


def _truncate(value: str, max_chars: int) -> str:
    if len(value) <= max_chars:
        return value
    return f"{value[:max_chars]}…"


def _decode_body(response: httpx.Response) -> Any:
    if "application/json" in response.headers.get("content-type", ""):
        try:
            return response.json()
        except ValueError:
            pass
    return response.text


def _response_snippet(payload: Any) -> Optional[str]:
    if isinstance(payload, str):
        return _truncate(payload, SNIPPET_MAX_CHARS)
    try:
        return _truncate(json.dumps(payload), SNIPPET_MAX_CHARS)
    except (TypeError, ValueError):
        return None


def _error_detail(payload: Any) -> Optional[str]:
    """Pull a human-readable message out of a provider error body"""
    if isinstance(payload, str):
        return payload or None
    if not isinstance(payload, dict):
        return None
    error = payload.get("error")
    if isinstance(error, dict) and isinstance(error.get("message"), str):
        return error["message"]
    for key in ("message", "detail", "error"):
        if isinstance(payload.get(key), str):
            return payload[key]
    return None


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _coerce_vector(raw: Any) -> Optional[list[float]]:
    """List of finite numbers, or None if anything is off"""
    if not isinstance(raw, list):
        return None
    vector = []
    for n in raw:
        if not _is_number(n) or not math.isfinite(n):
            return None
        vector.append(float(n))
    return vector


def extract_embeddings(payload: Any, expected_count: int) -> Optional[list[list[float]]]:
    """
    Parse an OpenAI-style {"data": [{"index", "embedding"}]} payload.

    Entries are reordered by index. Returns None when vectors are missing,
    malformed, or their count does not match the request.
    """
    if not isinstance(payload, dict):
        return None
    data = payload.get("data")
    if not isinstance(data, list) or not data:
        return None

    entries = []
    for entry in data:
        if not isinstance(entry, dict) or not _is_number(entry.get("index")):
            continue
        if not isinstance(entry.get("embedding"), list):
            continue
        vector = _coerce_vector(entry["embedding"])
        if vector is None:
            return None
        entries.append((entry["index"], vector))
    if not entries:
        return None

    entries.sort(key=lambda e: e[0])
    vectors = [vector for _, vector in entries]
    if expected_count > 0 and len(vectors) != expected_count:
        return None
    return vectors


def extract_usage_tokens(payload: Any) -> Optional[int]:
    if not isinstance(payload, dict) or not isinstance(payload.get("usage"), dict):
        return None
    usage = payload["usage"]
    for key in ("prompt_tokens", "input_tokens", "total_tokens"):
        if _is_number(usage.get(key)):
            return int(usage[key])
    return None


class OpenAICompatEmbeddingsClient(EmbeddingsClient):
    """
    Embeds topics through an OpenAI-compatible /v1/embeddings endpoint.

    Model selection is per budget tier with a shared default.
    """

    provider = "openai"

    def __init__(
        self,
        api_key: str,
        endpoint: str,
        models: Optional[Mapping[str, str]] = None,
        default_model: Optional[str] = None,
        credits_per_1k_tokens: float = 0.0,
        timeout: float = 120.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            api_key: Bearer token for the provider
            endpoint: Full embeddings URL
            models: Budget tier -> model name
            default_model: Model for tiers missing from models
            credits_per_1k_tokens: Credit rate for cost estimates
            timeout: HTTP timeout in seconds
            transport: Optional httpx transport (tests)
        """
        self.api_key = api_key
        self.endpoint = endpoint
        self.models = {tier.lower(): model for tier, model in (models or {}).items()}
        self.default_model = default_model
        self.credits_per_1k_tokens = credits_per_1k_tokens
        self.timeout = timeout
        self._transport = transport

    def choose_model(self, tier: str) -> EmbeddingModelRef:
        model = self.models.get((tier or "").lower()) or self.default_model
        if not model:
            raise EmbeddingsConfigError(
                "Missing model env var for embeddings (set OPENAI_EMBED_MODEL)"
            )
        return EmbeddingModelRef(provider=self.provider, model=model, endpoint=self.endpoint)

    def estimate_credits(self, input_tokens: int) -> float:
        return (input_tokens / 1000) * self.credits_per_1k_tokens

    async def embed(self, ref: EmbeddingModelRef, texts: list[str]) -> EmbedCallResult:
        if not texts:
            return EmbedCallResult(
                vectors=[], provider=ref.provider, model=ref.model, endpoint=ref.endpoint
            )

        body = {"model": ref.model, "input": list(texts)}
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            response = await client.post(
                ref.endpoint,
                json=body,
                headers={
                    "Content-Type": "application/json",
                    "Authorization": f"Bearer {self.api_key}",
                },
            )
        payload = _decode_body(response)

        if response.is_error:
            detail = _error_detail(payload)
            snippet = _response_snippet(payload)
            suffix = f": {_truncate(detail, DETAIL_MAX_CHARS)}" if detail else (
                f": {snippet}" if snippet else ""
            )
            request_id = (
                response.headers.get("x-request-id")
                or response.headers.get("xai-request-id")
                or response.headers.get("cf-ray")
            )
            logger.error(
                "Embeddings provider error",
                status=response.status_code,
                endpoint=ref.endpoint,
                model=ref.model,
                request_id=request_id,
            )
            raise EmbeddingsProviderError(
                f"Embeddings provider error ({response.status_code}){suffix}",
                status_code=response.status_code,
                endpoint=ref.endpoint,
                model=ref.model,
                request_id=request_id,
                response_snippet=snippet,
            )

        vectors = extract_embeddings(payload, len(texts))
        if vectors is None:
            snippet = _response_snippet(payload)
            suffix = f": {snippet}" if snippet else ""
            raise EmbeddingsProviderError(
                f"Embeddings response missing vectors{suffix}",
                endpoint=ref.endpoint,
                model=ref.model,
                response_snippet=snippet,
            )

        input_tokens = extract_usage_tokens(payload) or 0
        logger.info(
            "Embedded topics",
            provider=ref.provider,
            model=ref.model,
            count=len(vectors),
            input_tokens=input_tokens,
        )
        return EmbedCallResult(
            vectors=vectors,
            input_tokens=input_tokens,
            cost_estimate_credits=self.estimate_credits(input_tokens),
            provider=ref.provider,
            model=ref.model,
            endpoint=ref.endpoint,
            raw_response=payload,
        )


class OllamaEmbeddingsClient(EmbeddingsClient):
    """Embeds topics with a local Ollama server (no per-tier models, no credits)"""

    provider = "ollama"

    def __init__(
        self,
        ollama_url: str = DEFAULT_OLLAMA_URL,
        model: str = DEFAULT_OLLAMA_EMBED_MODEL,
        timeout: float = 120.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.ollama_url = ollama_url.rstrip("/")
        self.model = model
        self.timeout = timeout
        self._transport = transport

    def choose_model(self, tier: str) -> EmbeddingModelRef:
        return EmbeddingModelRef(
            provider=self.provider,
            model=self.model,
            endpoint=f"{self.ollama_url}/api/embed",
        )

    async def embed(self, ref: EmbeddingModelRef, texts: list[str]) -> EmbedCallResult:
        if not texts:
            return EmbedCallResult(
                vectors=[], provider=ref.provider, model=ref.model, endpoint=ref.endpoint
            )

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(
                    ref.endpoint,
                    json={"model": ref.model, "input": list(texts)},
                    headers={"Content-Type": "application/json"},
                )
                response.raise_for_status()
        except httpx.HTTPStatusError as e:
            error_text = e.response.text if e.response is not None else str(e)
            logger.error("Ollama HTTP error", status=e.response.status_code, error=error_text[:200])
            raise EmbeddingsProviderError(
                f"Embeddings provider error ({e.response.status_code})",
                status_code=e.response.status_code,
                endpoint=ref.endpoint,
                model=ref.model,
                response_snippet=_truncate(error_text, SNIPPET_MAX_CHARS),
            ) from e

        payload = _decode_body(response)
        raw_vectors = payload.get("embeddings") if isinstance(payload, dict) else None
        vectors = [_coerce_vector(v) for v in raw_vectors] if isinstance(raw_vectors, list) else []
        if not vectors or any(v is None for v in vectors) or len(vectors) != len(texts):
            raise EmbeddingsProviderError(
                "Embeddings response missing vectors",
                endpoint=ref.endpoint,
                model=ref.model,
                response_snippet=_response_snippet(payload),
            )

        input_tokens = payload.get("prompt_eval_count")
        input_tokens = int(input_tokens) if _is_number(input_tokens) else 0
        logger.info("Embedded topics", provider=ref.provider, model=ref.model, count=len(vectors))
        return EmbedCallResult(
            vectors=vectors,
            input_tokens=input_tokens,
            provider=ref.provider,
            model=ref.model,
            endpoint=ref.endpoint,
            raw_response=payload,
        )


def _first_env(env: Mapping[str, str], names: list[str]) -> Optional[str]:
    for name in names:
        value = env.get(name)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def _with_v1(base_url: str, path_after_v1: str) -> str:
    trimmed = base_url.rstrip("/")
    if trimmed.endswith("/v1"):
        return f"{trimmed}{path_after_v1}"
    return f"{trimmed}/v1{path_after_v1}"


def resolve_endpoint(env: Mapping[str, str]) -> str:
    """OPENAI_EMBED_ENDPOINT, else OPENAI_BASE_URL, else a rewritten OPENAI_ENDPOINT"""
    explicit = _first_env(env, ["OPENAI_EMBED_ENDPOINT"])
    if explicit:
        return explicit

    base_url = _first_env(env, ["OPENAI_BASE_URL"])
    if base_url:
        return _with_v1(base_url, "/embeddings")

    legacy = _first_env(env, ["OPENAI_ENDPOINT"])
    if not legacy:
        raise EmbeddingsConfigError(
            "Missing required env var: OPENAI_EMBED_ENDPOINT (or OPENAI_BASE_URL or OPENAI_ENDPOINT)"
        )
    # Legacy endpoint may point at responses or chat completions
    for suffix in ("/v1/responses", "/v1/chat/completions"):
        if suffix in legacy:
            return legacy.replace(suffix, "/v1/embeddings")
    return legacy


def resolve_credits_rate(env: Mapping[str, str]) -> float:
    for name in (
        "OPENAI_EMBED_CREDITS_PER_1K_INPUT_TOKENS",
        "OPENAI_EMBED_CREDITS_PER_1K_TOKENS",
        "OPENAI_CREDITS_PER_1K_INPUT_TOKENS",
    ):
        rate = parse_float_env(env.get(name))
        if rate is not None:
            return rate
    return 0.0


def create_env_embeddings_client(env: Optional[Mapping[str, str]] = None) -> EmbeddingsClient:
    """
    Build the embedding client from environment variables.

    Raises:
        EmbeddingsConfigError: provider unknown, or API key, endpoint or
            model missing
    """
    env = os.environ if env is None else env
    provider = (_first_env(env, ["EMBEDDINGS_PROVIDER"]) or "openai").lower()

    if provider == "ollama":
        return OllamaEmbeddingsClient(
            ollama_url=_first_env(env, ["OLLAMA_URL"]) or DEFAULT_OLLAMA_URL,
            model=_first_env(env, ["EMBED_MODEL"]) or DEFAULT_OLLAMA_EMBED_MODEL,
        )
    if provider != "openai":
        raise EmbeddingsConfigError(f"Unknown embeddings provider: {provider}")

    api_key = _first_env(env, ["OPENAI_API_KEY"])
    if not api_key:
        raise EmbeddingsConfigError("Missing required env var: OPENAI_API_KEY")
    endpoint = resolve_endpoint(env)

    models = {}
    for tier in BUDGET_TIERS:
        model = _first_env(env, [f"OPENAI_EMBED_MODEL_{tier.upper()}"])
        if model:
            models[tier] = model
    default_model = _first_env(env, ["OPENAI_EMBED_MODEL", "OPENAI_MODEL"])
    if not models and not default_model:
        raise EmbeddingsConfigError("Missing model env var for embeddings (set OPENAI_EMBED_MODEL)")

    return OpenAICompatEmbeddingsClient(
        api_key=api_key,
        endpoint=endpoint,
        models=models,
        default_model=default_model,
        credits_per_1k_tokens=resolve_credits_rate(env),
    )
