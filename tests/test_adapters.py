"""
Unit tests for model family adapters.

Tests payload construction and usage/output extraction per family.
"""

import pytest

from ai_gateway.core.adapters import (
    GenerationRequest,
    ImageArtifact,
    ImageStyle,
    resolve_adapter,
)
from ai_gateway.core.families import ModelFamily, Provider
from ai_gateway.core.usage import OperationKind, UsageCounts


class TestFamilies:
    """Test family metadata."""

    def test_every_family_has_an_adapter(self):
        for family in ModelFamily:
            assert resolve_adapter(family).family == family

    def test_providers(self):
        assert ModelFamily.ANTHROPIC_CLAUDE.provider == Provider.BEDROCK
        assert ModelFamily.STABILITY_DIFFUSION.provider == Provider.BEDROCK
        assert ModelFamily.OPENAI_CHAT.provider == Provider.OPENAI
        assert ModelFamily.OPENAI_EMBEDDING.provider == Provider.OPENAI

    def test_operations(self):
        assert resolve_adapter(ModelFamily.COHERE_COMMAND).operation == OperationKind.TEXT
        assert resolve_adapter(ModelFamily.OPENAI_IMAGE).operation == OperationKind.IMAGE
        assert resolve_adapter(ModelFamily.AMAZON_TITAN_EMBED).operation == OperationKind.EMBEDDING


class TestClaudeAdapter:
    """Test Anthropic Claude messages format."""

    def setup_method(self):
        self.adapter = resolve_adapter(ModelFamily.ANTHROPIC_CLAUDE)

    def test_payload_merges_defaults_and_overrides(self):
        request = GenerationRequest(prompt="Hello", parameters={"temperature": 0.2, "top_k": None})
        payload = self.adapter.build_payload(
            request, {"max_tokens": 4000, "temperature": 0.7, "top_k": 250}
        )

        assert payload == {
            "anthropic_version": "bedrock-2023-05-31",
            "max_tokens": 4000,
            "messages": [{"role": "user", "content": [{"type": "text", "text": "Hello"}]}],
            "temperature": 0.2,
            "top_k": 250,
        }

    def test_usage_and_output(self):
        response = {
            "content": [{"type": "text", "text": "Hi there"}],
            "usage": {"input_tokens": 12, "output_tokens": 34},
        }
        assert self.adapter.extract_usage(response) == UsageCounts(input_units=12, output_units=34)
        assert self.adapter.extract_output(response) == "Hi there"

    def test_missing_usage_counts_as_zero(self):
        assert self.adapter.extract_usage({}) == UsageCounts()
        assert self.adapter.extract_output({}) == ""


class TestTitanTextAdapter:
    def setup_method(self):
        self.adapter = resolve_adapter(ModelFamily.AMAZON_TITAN_TEXT)

    def test_payload(self):
        payload = self.adapter.build_payload(
            GenerationRequest(prompt="Hi"), {"max_tokens": 3000, "temperature": 0.7, "top_p": 1.0}
        )
        assert payload == {
            "inputText": "Hi",
            "textGenerationConfig": {"maxTokenCount": 3000, "temperature": 0.7, "topP": 1.0},
        }

    def test_usage_and_output(self):
        response = {
            "inputTextTokenCount": 5,
            "results": [{"tokenCount": 7, "outputText": "answer"}],
        }
        assert self.adapter.extract_usage(response) == UsageCounts(input_units=5, output_units=7)
        assert self.adapter.extract_output(response) == "answer"


class TestCohereAdapter:
    def setup_method(self):
        self.adapter = resolve_adapter(ModelFamily.COHERE_COMMAND)

    def test_payload(self):
        payload = self.adapter.build_payload(
            GenerationRequest(prompt="Hi"),
            {"max_tokens": 2000, "temperature": 0.7, "top_p": 0.75, "top_k": 0},
        )
        assert payload == {"prompt": "Hi", "max_tokens": 2000, "temperature": 0.7, "p": 0.75, "k": 0}

    def test_usage_from_billed_units(self):
        response = {
            "generations": [{"text": "yo"}],
            "meta": {"billed_units": {"input_tokens": 3, "output_tokens": 4}},
        }
        assert self.adapter.extract_usage(response) == UsageCounts(input_units=3, output_units=4)
        assert self.adapter.extract_output(response) == "yo"

    def test_usage_from_token_meta(self):
        response = {"meta": {"tokens": {"input_tokens": 8, "output_tokens": 9}}}
        assert self.adapter.extract_usage(response) == UsageCounts(input_units=8, output_units=9)


class TestStableDiffusionAdapter:
    def setup_method(self):
        self.adapter = resolve_adapter(ModelFamily.STABILITY_DIFFUSION)

    def test_payload_with_negative_prompt_and_style(self):
        request = GenerationRequest(
            prompt="a fox", negative_prompt="blurry", style=ImageStyle.ANIME,
            parameters={"seed": 42},
        )
        payload = self.adapter.build_payload(
            request, {"width": 1024, "height": 1024, "cfg_scale": 7.0, "steps": 30, "seed": 0}
        )

        assert payload["text_prompts"] == [
            {"text": "a fox", "weight": 1},
            {"text": "blurry", "weight": -1},
        ]
        assert payload["seed"] == 42
        assert payload["style_preset"] == "anime"
        assert payload["cfg_scale"] == 7.0

    def test_image_count_from_artifacts(self):
        response = {"artifacts": [
            {"base64": "AAA", "seed": 1, "finishReason": "SUCCESS"},
            {"base64": "BBB", "seed": 2, "finishReason": "SUCCESS"},
        ]}
        assert self.adapter.extract_usage(response) == UsageCounts(image_count=2)
        assert self.adapter.extract_output(response) == [
            ImageArtifact("AAA", 1, "SUCCESS"),
            ImageArtifact("BBB", 2, "SUCCESS"),
        ]

    def test_missing_artifacts_count_zero(self):
        assert self.adapter.extract_usage({}).image_count == 0
        assert self.adapter.extract_output({}) == []


class TestEmbeddingAdapters:
    def test_titan_embedding(self):
        adapter = resolve_adapter(ModelFamily.AMAZON_TITAN_EMBED)
        assert adapter.build_payload(GenerationRequest(prompt="text"), {}) == {"inputText": "text"}

        response = {"embedding": [0.1, 0.2], "inputTextTokenCount": 3}
        assert adapter.extract_usage(response) == UsageCounts(input_units=3)
        assert adapter.extract_output(response) == [0.1, 0.2]

    def test_openai_embedding(self):
        adapter = resolve_adapter(ModelFamily.OPENAI_EMBEDDING)
        payload = adapter.build_payload(GenerationRequest(prompt="text"), {"dimensions": 256})
        assert payload == {"input": "text", "dimensions": 256}

        response = {"data": [{"embedding": [0.5, 0.5]}], "usage": {"prompt_tokens": 2}}
        assert adapter.extract_usage(response) == UsageCounts(input_units=2)
        assert adapter.extract_output(response) == [0.5, 0.5]

    @pytest.mark.parametrize("family", [ModelFamily.AMAZON_TITAN_EMBED, ModelFamily.OPENAI_EMBEDDING])
    def test_empty_vector_is_not_output(self, family):
        adapter = resolve_adapter(family)
        assert adapter.has_output([]) is False
        assert adapter.has_output([0.1]) is True

    def test_text_output_always_accepted(self):
        assert resolve_adapter(ModelFamily.ANTHROPIC_CLAUDE).has_output("") is True


class TestOpenAIAdapters:
    def test_chat(self):
        adapter = resolve_adapter(ModelFamily.OPENAI_CHAT)
        payload = adapter.build_payload(
            GenerationRequest(prompt="Hi"), {"max_tokens": 100, "temperature": 0.5}
        )
        assert payload == {
            "messages": [{"role": "user", "content": "Hi"}],
            "max_tokens": 100,
            "temperature": 0.5,
        }

        response = {
            "choices": [{"message": {"role": "assistant", "content": "Hello"}}],
            "usage": {"prompt_tokens": 4, "completion_tokens": 6},
        }
        assert adapter.extract_usage(response) == UsageCounts(input_units=4, output_units=6)
        assert adapter.extract_output(response) == "Hello"

    def test_image(self):
        adapter = resolve_adapter(ModelFamily.OPENAI_IMAGE)
        payload = adapter.build_payload(GenerationRequest(prompt="a cat"), {})
        assert payload == {"prompt": "a cat", "n": 1, "size": "1024x1024", "response_format": "b64_json"}

        response = {"data": [{"b64_json": "ZZZ"}]}
        assert adapter.extract_usage(response) == UsageCounts(image_count=1)
        assert adapter.extract_output(response) == [ImageArtifact("ZZZ")]


@pytest.mark.parametrize("family", list(ModelFamily))
def test_usage_extraction_never_raises(family):
    """Malformed responses yield zero usage rather than errors."""
    adapter = resolve_adapter(family)
    for response in ({}, {"usage": None}, {"results": "oops"}, {"artifacts": None}):
        usage = adapter.extract_usage(response)
        assert usage.input_units >= 0
        assert usage.output_units >= 0
        assert usage.image_count >= 0
