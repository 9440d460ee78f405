"""Tests for the topic embedding clients and env factory."""

import asyncio
import json

import httpx
import pytest

from services.theme_cluster.embedder import (
    EmbeddingModelRef,
    EmbeddingsConfigError,
    EmbeddingsProviderError,
    OllamaEmbeddingsClient,
    OpenAICompatEmbeddingsClient,
    create_env_embeddings_client,
    extract_embeddings,
    extract_usage_tokens,
    resolve_endpoint,
)

ENDPOINT = "https://api.example.test/v1/embeddings"


def _openai_client(handler, **kwargs) -> OpenAICompatEmbeddingsClient:
    kwargs.setdefault("default_model", "embed-small")
    return OpenAICompatEmbeddingsClient(
        api_key="sk-test",
        endpoint=ENDPOINT,
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


class TestExtractEmbeddings:
    def test_orders_by_index(self):
        payload = {"data": [
            {"index": 1, "embedding": [0.0, 1.0]},
            {"index": 0, "embedding": [1.0, 0.0]},
        ]}
        assert extract_embeddings(payload, 2) == [[1.0, 0.0], [0.0, 1.0]]

    def test_count_mismatch(self):
        payload = {"data": [{"index": 0, "embedding": [1.0]}]}
        assert extract_embeddings(payload, 2) is None

    def test_non_finite_value(self):
        payload = {"data": [{"index": 0, "embedding": [1.0, float("nan")]}]}
        assert extract_embeddings(payload, 1) is None

    @pytest.mark.parametrize("payload", [None, "oops", {}, {"data": []}, {"data": [{"index": "0"}]}])
    def test_missing(self, payload):
        assert extract_embeddings(payload, 1) is None


class TestExtractUsageTokens:
    def test_prompt_tokens(self):
        assert extract_usage_tokens({"usage": {"prompt_tokens": 7, "total_tokens": 9}}) == 7

    def test_total_tokens_fallback(self):
        assert extract_usage_tokens({"usage": {"total_tokens": 9}}) == 9

    def test_missing(self):
        assert extract_usage_tokens({"data": []}) is None


class TestOpenAICompatClient:
    def test_embed_success(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["auth"] = request.headers["authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={
                "data": [
                    {"index": 1, "embedding": [0.0, 1.0]},
                    {"index": 0, "embedding": [1.0, 0.0]},
                ],
                "usage": {"prompt_tokens": 2000},
            })

        client = _openai_client(handler, credits_per_1k_tokens=0.5)
        ref = client.choose_model("normal")
        result = asyncio.run(client.embed(ref, ["Oil", "Gas"]))

        assert seen["auth"] == "Bearer sk-test"
        assert seen["body"] == {"model": "embed-small", "input": ["Oil", "Gas"]}
        assert result.vectors == [[1.0, 0.0], [0.0, 1.0]]
        assert result.input_tokens == 2000
        assert result.cost_estimate_credits == pytest.approx(1.0)
        assert result.model == "embed-small"

    def test_long_text_sent_unchanged(self):
        seen = {}

        def handler(request):
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"data": [{"index": 0, "embedding": [1.0]}]})

        long_topic = "Fed " * 1000
        client = _openai_client(handler)
        asyncio.run(client.embed(client.choose_model("low"), [long_topic]))

        assert seen["body"]["input"] == [long_topic]

    def test_empty_input_makes_no_request(self):
        def handler(request):
            raise AssertionError("no request expected")

        client = _openai_client(handler)
        result = asyncio.run(client.embed(client.choose_model("normal"), []))

        assert result.vectors == []
        assert result.input_tokens == 0

    def test_provider_error(self):
        def handler(request):
            return httpx.Response(
                429,
                json={"error": {"message": "Rate limit exceeded"}},
                headers={"x-request-id": "req_123"},
            )

        client = _openai_client(handler)
        with pytest.raises(EmbeddingsProviderError) as exc_info:
            asyncio.run(client.embed(client.choose_model("normal"), ["Oil"]))

        err = exc_info.value
        assert str(err) == "Embeddings provider error (429): Rate limit exceeded"
        assert err.status_code == 429
        assert err.request_id == "req_123"
        assert err.model == "embed-small"
        assert err.endpoint == ENDPOINT

    def test_plain_text_error_body(self):
        def handler(request):
            return httpx.Response(502, text="Bad gateway")

        client = _openai_client(handler)
        with pytest.raises(EmbeddingsProviderError, match=r"\(502\): Bad gateway"):
            asyncio.run(client.embed(client.choose_model("normal"), ["Oil"]))

    def test_missing_vectors(self):
        def handler(request):
            return httpx.Response(200, json={"data": [{"index": 0, "embedding": [1.0]}]})

        client = _openai_client(handler)
        with pytest.raises(EmbeddingsProviderError, match="Embeddings response missing vectors"):
            asyncio.run(client.embed(client.choose_model("normal"), ["Oil", "Gas"]))

    def test_tier_models(self):
        client = _openai_client(
            lambda r: httpx.Response(200),
            models={"HIGH": "embed-large"},
        )
        assert client.choose_model("high").model == "embed-large"
        assert client.choose_model("low").model == "embed-small"

    def test_no_model_for_tier(self):
        client = _openai_client(lambda r: httpx.Response(200), models={"high": "embed-large"}, default_model=None)
        with pytest.raises(EmbeddingsConfigError):
            client.choose_model("low")


class TestOllamaClient:
    def test_embed(self):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"embeddings": [[0.1, 0.2], [0.3, 0.4]], "prompt_eval_count": 6})

        client = OllamaEmbeddingsClient(
            ollama_url="http://ollama:11434/", model="nomic-embed", transport=httpx.MockTransport(handler)
        )
        ref = client.choose_model("high")
        result = asyncio.run(client.embed(ref, ["Oil", "Gas"]))

        assert seen["url"] == "http://ollama:11434/api/embed"
        assert seen["body"] == {"model": "nomic-embed", "input": ["Oil", "Gas"]}
        assert result.vectors == [[0.1, 0.2], [0.3, 0.4]]
        assert result.input_tokens == 6
        assert result.cost_estimate_credits == 0.0

    def test_http_error(self):
        client = OllamaEmbeddingsClient(
            transport=httpx.MockTransport(lambda r: httpx.Response(500, text="model not found"))
        )
        with pytest.raises(EmbeddingsProviderError) as exc_info:
            asyncio.run(client.embed(client.choose_model("normal"), ["Oil"]))
        assert exc_info.value.status_code == 500

    def test_wrong_count(self):
        client = OllamaEmbeddingsClient(
            transport=httpx.MockTransport(lambda r: httpx.Response(200, json={"embeddings": [[0.1]]}))
        )
        with pytest.raises(EmbeddingsProviderError):
            asyncio.run(client.embed(client.choose_model("normal"), ["Oil", "Gas"]))


class TestResolveEndpoint:
    def test_explicit(self):
        assert resolve_endpoint({"OPENAI_EMBED_ENDPOINT": "https://x/embed"}) == "https://x/embed"

    @pytest.mark.parametrize("base", ["https://x", "https://x/", "https://x/v1", "https://x/v1/"])
    def test_base_url(self, base):
        assert resolve_endpoint({"OPENAI_BASE_URL": base}) == "https://x/v1/embeddings"

    @pytest.mark.parametrize("legacy", ["https://x/v1/responses", "https://x/v1/chat/completions"])
    def test_legacy_rewrite(self, legacy):
        assert resolve_endpoint({"OPENAI_ENDPOINT": legacy}) == "https://x/v1/embeddings"

    def test_missing(self):
        with pytest.raises(EmbeddingsConfigError):
            resolve_endpoint({})


class TestCreateEnvEmbeddingsClient:
    BASE_ENV = {
        "OPENAI_API_KEY": "sk-test",
        "OPENAI_BASE_URL": "https://api.example.test",
        "OPENAI_EMBED_MODEL": "embed-small",
    }

    def test_openai_default(self):
        client = create_env_embeddings_client({
            **self.BASE_ENV,
            "OPENAI_EMBED_MODEL_HIGH": "embed-large",
            "OPENAI_EMBED_CREDITS_PER_1K_TOKENS": "0.02",
        })

        assert isinstance(client, OpenAICompatEmbeddingsClient)
        assert client.choose_model("high") == EmbeddingModelRef(
            provider="openai", model="embed-large", endpoint=ENDPOINT
        )
        assert client.choose_model("normal").model == "embed-small"
        assert client.credits_per_1k_tokens == 0.02

    def test_openai_model_fallback(self):
        env = {**self.BASE_ENV, "OPENAI_MODEL": "shared-model"}
        del env["OPENAI_EMBED_MODEL"]
        assert create_env_embeddings_client(env).choose_model("low").model == "shared-model"

    def test_missing_api_key(self):
        env = dict(self.BASE_ENV)
        del env["OPENAI_API_KEY"]
        with pytest.raises(EmbeddingsConfigError, match="OPENAI_API_KEY"):
            create_env_embeddings_client(env)

    def test_missing_model(self):
        env = dict(self.BASE_ENV)
        del env["OPENAI_EMBED_MODEL"]
        with pytest.raises(EmbeddingsConfigError, match="OPENAI_EMBED_MODEL"):
            create_env_embeddings_client(env)

    def test_ollama(self):
        client = create_env_embeddings_client({"EMBEDDINGS_PROVIDER": "Ollama", "EMBED_MODEL": "nomic-embed"})
        assert isinstance(client, OllamaEmbeddingsClient)
        assert client.choose_model("normal").model == "nomic-embed"

    def test_unknown_provider(self):
        with pytest.raises(EmbeddingsConfigError, match="Unknown embeddings provider"):
            create_env_embeddings_client({"EMBEDDINGS_PROVIDER": "cohere"})
