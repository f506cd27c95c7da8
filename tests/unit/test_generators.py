"""Unit tests for embedding generator backends and factory."""

from __future__ import annotations

import io
import json
from urllib.error import HTTPError
from urllib.error import URLError

import pytest

from mnemovec.config import EmbeddingConfig
from mnemovec.embeddings import build_embedding_generator
from mnemovec.embeddings import EmbeddingGenerator
from mnemovec.embeddings import HashingEmbeddingGenerator
from mnemovec.embeddings import OpenAICompatibleEmbeddingGenerator
from mnemovec.errors import GenerationFailed
from mnemovec.vector import cosine_similarity
from mnemovec.vector import magnitude


class TestBuildEmbeddingGenerator:
    def test_default_is_hashing(self) -> None:
        gen = build_embedding_generator(EmbeddingConfig())
        assert isinstance(gen, HashingEmbeddingGenerator)
        assert gen.dimension == 384

    def test_openai_provider_requires_api_key(self) -> None:
        with pytest.raises(ValueError, match="api_key is required"):
            build_embedding_generator(EmbeddingConfig(provider="openai"))

    def test_openai_provider(self) -> None:
        gen = build_embedding_generator(
            EmbeddingConfig(provider="openai", api_key="k", dimension=256)
        )
        assert isinstance(gen, OpenAICompatibleEmbeddingGenerator)
        assert gen.dimension == 256

    def test_unsupported_provider_rejected(self) -> None:
        with pytest.raises(ValueError, match="Unsupported embedding_config.provider"):
            build_embedding_generator(EmbeddingConfig(provider="onnx"))


class TestHashingEmbeddingGenerator:
    async def test_satisfies_protocol(self) -> None:
        assert isinstance(HashingEmbeddingGenerator(), EmbeddingGenerator)

    async def test_dimension_and_unit_length(self) -> None:
        vector = await HashingEmbeddingGenerator(64).generate("The sky is blue")
        assert len(vector) == 64
        assert magnitude(vector) == pytest.approx(1.0)

    async def test_deterministic(self) -> None:
        a = await HashingEmbeddingGenerator().generate("Alice likes tea")
        b = await HashingEmbeddingGenerator().generate("Alice likes tea")
        assert a == b

    async def test_case_and_punctuation_insensitive(self) -> None:
        gen = HashingEmbeddingGenerator()
        a = await gen.generate("The sky is blue.")
        b = await gen.generate("the SKY is blue")
        assert a == b

    async def test_shared_vocabulary_scores_higher(self) -> None:
        gen = HashingEmbeddingGenerator()
        base = await gen.generate("I love coffee in the morning")
        near = await gen.generate("I love coffee in the evening")
        far = await gen.generate("Quarterly revenue grew by eight percent")
        assert cosine_similarity(base, near) > cosine_similarity(base, far)

    async def test_text_without_tokens_is_zero_vector(self) -> None:
        vector = await HashingEmbeddingGenerator(8).generate("!!! ...")
        assert vector == [0.0] * 8

    async def test_batch_matches_single(self) -> None:
        gen = HashingEmbeddingGenerator()
        batch = await gen.generate_batch(["one", "two"])
        assert batch == [await gen.generate("one"), await gen.generate("two")]

    def test_rejects_non_positive_dimension(self) -> None:
        with pytest.raises(ValueError):
            HashingEmbeddingGenerator(0)


class _FakeResponse(io.BytesIO):
    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()
        return False


def _http_error(code: int) -> HTTPError:
    return HTTPError(
        url="https://example.test/embeddings",
        code=code,
        msg="error",
        hdrs=None,
        fp=io.BytesIO(b"upstream says no"),
    )


class TestOpenAICompatibleEmbeddingGenerator:
    def _generator(self, **kwargs) -> OpenAICompatibleEmbeddingGenerator:
        params = {
            "model": "text-embedding-3-small",
            "api_key": "test",
            "dimension": 3,
            "base_url": "https://example.test/v1/",
            "backoff_base_seconds": 0.0,
        }
        params.update(kwargs)
        return OpenAICompatibleEmbeddingGenerator(**params)

    async def test_parses_response_in_index_order(self, monkeypatch) -> None:
        captured: dict = {}

        def _fake_urlopen(request, timeout):
            captured["url"] = request.full_url
            captured["body"] = json.loads(request.data.decode("utf-8"))
            captured["auth"] = request.get_header("Authorization")
            payload = {
                "data": [
                    {"index": 1, "embedding": [0.0, 1.0, 0.0]},
                    {"index": 0, "embedding": [1.0, 0.0, 0.0]},
                ]
            }
            return _FakeResponse(json.dumps(payload).encode("utf-8"))

        monkeypatch.setattr("mnemovec.embeddings.generators.urlopen", _fake_urlopen)
        vectors = await self._generator().generate_batch(["a", "b"])
        assert vectors == [[1.0, 0.0, 0.0], [0.0, 1.0, 0.0]]
        assert captured["url"] == "https://example.test/v1/embeddings"
        assert captured["body"]["input"] == ["a", "b"]
        assert captured["body"]["dimensions"] == 3
        assert captured["auth"] == "Bearer test"

    async def test_retries_transient_errors_then_succeeds(self, monkeypatch) -> None:
        attempts = {"count": 0}

        def _flaky_urlopen(request, timeout):
            attempts["count"] += 1
            if attempts["count"] < 3:
                raise _http_error(503)
            payload = {"data": [{"index": 0, "embedding": [0.5, 0.5, 0.5]}]}
            return _FakeResponse(json.dumps(payload).encode("utf-8"))

        monkeypatch.setattr("mnemovec.embeddings.generators.urlopen", _flaky_urlopen)
        assert await self._generator().generate("x") == [0.5, 0.5, 0.5]
        assert attempts["count"] == 3

    async def test_gives_up_after_max_retries(self, monkeypatch) -> None:
        attempts = {"count": 0}

        def _down(request, timeout):
            attempts["count"] += 1
            raise URLError("connection refused")

        monkeypatch.setattr("mnemovec.embeddings.generators.urlopen", _down)
        with pytest.raises(GenerationFailed, match="after 3 attempts"):
            await self._generator(max_retries=2).generate("x")
        assert attempts["count"] == 3

    async def test_client_error_is_not_retried(self, monkeypatch) -> None:
        attempts = {"count": 0}

        def _unauthorized(request, timeout):
            attempts["count"] += 1
            raise _http_error(401)

        monkeypatch.setattr("mnemovec.embeddings.generators.urlopen", _unauthorized)
        with pytest.raises(GenerationFailed, match="HTTP 401"):
            await self._generator().generate("x")
        assert attempts["count"] == 1

    async def test_malformed_payload(self, monkeypatch) -> None:
        monkeypatch.setattr(
            "mnemovec.embeddings.generators.urlopen",
            lambda request, timeout: _FakeResponse(b'{"nope": []}'),
        )
        with pytest.raises(GenerationFailed, match="missing data"):
            await self._generator().generate("x")

    async def test_empty_batch_makes_no_request(self, monkeypatch) -> None:
        def _fail(request, timeout):
            raise AssertionError("no request expected")

        monkeypatch.setattr("mnemovec.embeddings.generators.urlopen", _fail)
        assert await self._generator().generate_batch([]) == []
