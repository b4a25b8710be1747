"""
Unit Tests for the embedding and generation provider boundary

Run with: pytest tests/ -v
"""

from unittest import mock

import pytest
import requests

from cited_rag.errors import ProviderError
from cited_rag.embed import EmbeddingConfig, OllamaEmbedder, build_embedder, SentenceTransformerEmbedder
from cited_rag.generate import (
    Generator,
    GenerationConfig,
    MockGenerator,
    build_prompt,
    build_baseline_prompt,
    NO_INFORMATION_ANSWER,
)
from cited_rag.retrieve import ScoredChunk


def fake_response(body):
    response = mock.Mock()
    response.json.return_value = body
    response.raise_for_status.return_value = None
    return response


class TestOllamaEmbedder:
    """Tests for /api/embeddings calls."""

    def test_embed(self):
        with mock.patch("requests.post", return_value=fake_response({"embedding": [0.1, 0.2]})) as post:
            vector = OllamaEmbedder().embed("hello")

        assert vector == [0.1, 0.2]
        args, kwargs = post.call_args
        assert args[0] == "http://localhost:11434/api/embeddings"
        assert kwargs["json"] == {"model": "nomic-embed-text", "prompt": "hello"}
        assert kwargs["timeout"] is None

    def test_unreachable(self):
        with mock.patch("requests.post", side_effect=requests.ConnectionError("refused")):
            with pytest.raises(ProviderError) as excinfo:
                OllamaEmbedder().embed("hello")

        assert excinfo.value.provider == "ollama"
        assert isinstance(excinfo.value.__cause__, requests.ConnectionError)
        assert str(excinfo.value).startswith("[ollama]")

    def test_http_error(self):
        response = fake_response({})
        response.raise_for_status.side_effect = requests.HTTPError("500 Server Error")
        with mock.patch("requests.post", return_value=response):
            with pytest.raises(ProviderError):
                OllamaEmbedder().embed("hello")

    @pytest.mark.parametrize("body", [
        {},
        {"embedding": []},
        {"embedding": "nope"},
        {"embedding": [0.1, None]},
        {"embedding": [0.1, "x"]},
        ["list"],
    ])
    def test_malformed_response(self, body):
        with mock.patch("requests.post", return_value=fake_response(body)):
            with pytest.raises(ProviderError):
                OllamaEmbedder().embed("hello")

    def test_configured_timeout(self):
        config = EmbeddingConfig(base_url="http://ollama:11434/", timeout=5.0)
        with mock.patch("requests.post", return_value=fake_response({"embedding": [1.0]})) as post:
            OllamaEmbedder(config).embed("hello")

        args, kwargs = post.call_args
        assert args[0] == "http://ollama:11434/api/embeddings"
        assert kwargs["timeout"] == 5.0

    def test_build_embedder(self):
        assert isinstance(build_embedder(EmbeddingConfig()), OllamaEmbedder)
        assert isinstance(build_embedder(EmbeddingConfig(provider="local")), SentenceTransformerEmbedder)
        with pytest.raises(ValueError):
            build_embedder(EmbeddingConfig(provider="unknown"))


class TestGenerator:
    """Tests for /api/generate calls."""

    def test_generate(self):
        with mock.patch("requests.post", return_value=fake_response({"response": "Answer [1]."})) as post:
            text = Generator().generate("prompt text")

        assert text == "Answer [1]."
        args, kwargs = post.call_args
        assert args[0] == "http://localhost:11434/api/generate"
        payload = kwargs["json"]
        assert payload["model"] == "llama3.2"
        assert payload["stream"] is False
        assert payload["options"]["temperature"] == 0.1
        assert payload["options"]["top_p"] == 0.9

    def test_sampling_overrides(self):
        with mock.patch("requests.post", return_value=fake_response({"response": "ok"})) as post:
            Generator().generate("prompt", temperature=0.7, top_p=0.5)

        options = post.call_args[1]["json"]["options"]
        assert options["temperature"] == 0.7
        assert options["top_p"] == 0.5

    def test_unreachable(self):
        with mock.patch("requests.post", side_effect=requests.Timeout("timed out")):
            with pytest.raises(ProviderError) as excinfo:
                Generator().generate("prompt")
        assert excinfo.value.provider == "ollama"

    def test_missing_text(self):
        with mock.patch("requests.post", return_value=fake_response({"done": True})):
            with pytest.raises(ProviderError):
                Generator().generate("prompt")

    def test_unknown_provider(self):
        with pytest.raises(ValueError):
            Generator(GenerationConfig(provider="unknown")).generate("prompt")

    def test_mock_generator_records_prompts(self):
        generator = MockGenerator(lambda prompt: prompt.upper())
        assert generator.generate("abc") == "ABC"
        assert generator.prompts == ["abc"]
        assert MockGenerator().generate("x") == NO_INFORMATION_ANSWER


class TestPrompts:
    """Tests for prompt assembly."""

    @pytest.fixture
    def chunks(self):
        return [
            ScoredChunk("a.txt-chunk-0", "a.txt", "Alpha text.", 0.9),
            ScoredChunk("b.txt-chunk-3", "b.txt", "Beta text.", 0.5),
        ]

    def test_numbered_context(self, chunks):
        prompt = build_prompt("What is alpha?", chunks)

        assert "[1] (Source: a.txt)\nAlpha text." in prompt
        assert "[2] (Source: b.txt)\nBeta text." in prompt
        assert "QUESTION: What is alpha?" in prompt
        assert "There is no information on this in the documents." in prompt
        assert "Previous conversation" not in prompt

    def test_conversation_context(self, chunks):
        prompt = build_prompt("And beta?", chunks, "Previous conversation:\nUser: What is alpha?")
        assert prompt.index("Previous conversation:") < prompt.index("DOCUMENTS (CONTEXT):")

    def test_baseline_prompt(self):
        prompt = build_baseline_prompt("What is alpha?")
        assert "What is alpha?" in prompt
        assert "[1]" not in prompt


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
