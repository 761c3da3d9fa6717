"""
Model adapters, one per model family.

Each adapter translates a generic request into the family's payload and
reads usage counts and output back out of the family's response. Usage
extraction never raises: missing fields count as zero.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from .errors import ValidationError
from .families import ModelFamily
from .usage import OperationKind, UsageCounts


class ImageStyle(Enum):
    """Style presets accepted by Stable Diffusion XL."""
    PHOTOGRAPHIC = "photographic"
    DIGITAL_ART = "digital-art"
    CINEMATIC = "cinematic"
    ANIME = "anime"
    LINE_ART = "line-art"
    COMIC_BOOK = "comic-book"
    ANALOG_FILM = "analog-film"
    NEON_PUNK = "neon-punk"
    ISOMETRIC = "isometric"
    LOW_POLY = "low-poly"
    ORIGAMI = "origami"
    MODELING_COMPOUND = "modeling-compound"
    FANTASY_ART = "fantasy-art"
    ENHANCE = "enhance"
    TILE_TEXTURE = "tile-texture"


@dataclass(frozen=True)
class GenerationRequest:
    """Model-independent request.

    ``parameters`` override the model's configured defaults; None values
    are ignored.
    """
    prompt: str
    parameters: Mapping[str, Any] = field(default_factory=dict)
    negative_prompt: Optional[str] = None
    style: Optional[ImageStyle] = None


@dataclass(frozen=True)
class ImageArtifact:
    base64: str
    seed: Optional[int] = None
    finish_reason: Optional[str] = None


def _dig(data: Any, *path: Any) -> Any:
    """Walk nested dicts/lists, returning None on any missing step."""
    current = data
    for step in path:
        if isinstance(step, int):
            if not isinstance(current, list) or not -len(current) <= step < len(current):
                return None
        elif not isinstance(current, Mapping) or step not in current:
            return None
        current = current[step]
    return current


def _count(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0
    return max(0, int(value))


class ModelAdapter:
    """Base class for family adapters."""

    family: ModelFamily

    @property
    def operation(self) -> OperationKind:
        return self.family.operation

    def build_payload(self, request: GenerationRequest, defaults: Mapping[str, Any]) -> Dict[str, Any]:
        raise NotImplementedError

    def extract_usage(self, response: Mapping[str, Any]) -> UsageCounts:
        raise NotImplementedError

    def extract_output(self, response: Mapping[str, Any]) -> Any:
        raise NotImplementedError

    def has_output(self, output: Any) -> bool:
        """Whether an extracted output is worth pricing and caching."""
        return True

    @staticmethod
    def _params(request: GenerationRequest, defaults: Mapping[str, Any]) -> Dict[str, Any]:
        params = dict(defaults)
        params.update({k: v for k, v in request.parameters.items() if v is not None})
        return params


class ClaudeAdapter(ModelAdapter):
    family = ModelFamily.ANTHROPIC_CLAUDE

    def build_payload(self, request, defaults):
        params = self._params(request, defaults)
        payload = {
            "anthropic_version": "bedrock-2023-05-31",
            "max_tokens": params.get("max_tokens", 4000),
            "messages": [
                {"role": "user", "content": [{"type": "text", "text": request.prompt}]},
            ],
        }
        for name in ("temperature", "top_p", "top_k"):
            if name in params:
                payload[name] = params[name]
        return payload

    def extract_usage(self, response):
        return UsageCounts(
            input_units=_count(_dig(response, "usage", "input_tokens")),
            output_units=_count(_dig(response, "usage", "output_tokens")),
        )

    def extract_output(self, response):
        return _dig(response, "content", 0, "text") or _dig(response, "completion") or ""


class TitanTextAdapter(ModelAdapter):
    family = ModelFamily.AMAZON_TITAN_TEXT

    def build_payload(self, request, defaults):
        params = self._params(request, defaults)
        generation_config = {"maxTokenCount": params.get("max_tokens", 3000)}
        if "temperature" in params:
            generation_config["temperature"] = params["temperature"]
        if "top_p" in params:
            generation_config["topP"] = params["top_p"]
        return {"inputText": request.prompt, "textGenerationConfig": generation_config}

    def extract_usage(self, response):
        return UsageCounts(
            input_units=_count(_dig(response, "inputTextTokenCount")),
            output_units=_count(_dig(response, "results", 0, "tokenCount")),
        )

    def extract_output(self, response):
        return _dig(response, "results", 0, "outputText") or _dig(response, "outputText") or ""


class CohereAdapter(ModelAdapter):
    family = ModelFamily.COHERE_COMMAND

    def build_payload(self, request, defaults):
        params = self._params(request, defaults)
        payload = {"prompt": request.prompt, "max_tokens": params.get("max_tokens", 2000)}
        if "temperature" in params:
            payload["temperature"] = params["temperature"]
        if "top_p" in params:
            payload["p"] = params["top_p"]
        if "top_k" in params:
            payload["k"] = params["top_k"]
        return payload

    def extract_usage(self, response):
        return UsageCounts(
            input_units=_count(
                _dig(response, "meta", "billed_units", "input_tokens")
                or _dig(response, "meta", "tokens", "input_tokens")
            ),
            output_units=_count(
                _dig(response, "meta", "billed_units", "output_tokens")
                or _dig(response, "meta", "tokens", "output_tokens")
            ),
        )

    def extract_output(self, response):
        return _dig(response, "generations", 0, "text") or _dig(response, "text") or ""


class StableDiffusionAdapter(ModelAdapter):
    family = ModelFamily.STABILITY_DIFFUSION

    def build_payload(self, request, defaults):
        params = self._params(request, defaults)
        text_prompts = [{"text": request.prompt, "weight": 1}]
        if request.negative_prompt:
            text_prompts.append({"text": request.negative_prompt, "weight": -1})
        payload = {"text_prompts": text_prompts}
        for name in ("cfg_scale", "height", "width", "steps", "seed"):
            if name in params:
                payload[name] = params[name]
        if request.style is not None:
            payload["style_preset"] = request.style.value
        return payload

    def extract_usage(self, response):
        artifacts = _dig(response, "artifacts")
        return UsageCounts(image_count=len(artifacts) if isinstance(artifacts, list) else 0)

    def extract_output(self, response) -> List[ImageArtifact]:
        artifacts = _dig(response, "artifacts") or []
        return [
            ImageArtifact(
                base64=artifact.get("base64", ""),
                seed=artifact.get("seed"),
                finish_reason=artifact.get("finishReason"),
            )
            for artifact in artifacts
            if isinstance(artifact, Mapping)
        ]


class TitanEmbeddingAdapter(ModelAdapter):
    family = ModelFamily.AMAZON_TITAN_EMBED

    def has_output(self, output):
        return len(output) > 0

    def build_payload(self, request, defaults):
        return {"inputText": request.prompt}

    def extract_usage(self, response):
        return UsageCounts(input_units=_count(_dig(response, "inputTextTokenCount")))

    def extract_output(self, response) -> List[float]:
        return list(_dig(response, "embedding") or [])


class OpenAIChatAdapter(ModelAdapter):
    family = ModelFamily.OPENAI_CHAT

    def build_payload(self, request, defaults):
        params = self._params(request, defaults)
        payload = {"messages": [{"role": "user", "content": request.prompt}]}
        for name in ("max_tokens", "temperature", "top_p"):
            if name in params:
                payload[name] = params[name]
        return payload

    def extract_usage(self, response):
        return UsageCounts(
            input_units=_count(_dig(response, "usage", "prompt_tokens")),
            output_units=_count(_dig(response, "usage", "completion_tokens")),
        )

    def extract_output(self, response):
        return _dig(response, "choices", 0, "message", "content") or ""


class OpenAIEmbeddingAdapter(ModelAdapter):
    family = ModelFamily.OPENAI_EMBEDDING

    def has_output(self, output):
        return len(output) > 0

    def build_payload(self, request, defaults):
        payload = {"input": request.prompt}
        if "dimensions" in defaults:
            payload["dimensions"] = defaults["dimensions"]
        return payload

    def extract_usage(self, response):
        return UsageCounts(input_units=_count(_dig(response, "usage", "prompt_tokens")))

    def extract_output(self, response) -> List[float]:
        return list(_dig(response, "data", 0, "embedding") or [])


class OpenAIImageAdapter(ModelAdapter):
    family = ModelFamily.OPENAI_IMAGE

    def build_payload(self, request, defaults):
        params = self._params(request, defaults)
        payload = {
            "prompt": request.prompt,
            "n": params.get("n", 1),
            "size": params.get("size", "1024x1024"),
            "response_format": "b64_json",
        }
        if "quality" in params:
            payload["quality"] = params["quality"]
        return payload

    def extract_usage(self, response):
        data = _dig(response, "data")
        return UsageCounts(image_count=len(data) if isinstance(data, list) else 0)

    def extract_output(self, response) -> List[ImageArtifact]:
        return [
            ImageArtifact(base64=item.get("b64_json") or "")
            for item in (_dig(response, "data") or [])
            if isinstance(item, Mapping)
        ]


_ADAPTERS = {
    adapter.family: adapter
    for adapter in (
        ClaudeAdapter(),
        TitanTextAdapter(),
        CohereAdapter(),
        StableDiffusionAdapter(),
        TitanEmbeddingAdapter(),
        OpenAIChatAdapter(),
        OpenAIEmbeddingAdapter(),
        OpenAIImageAdapter(),
    )
}


def resolve_adapter(family: ModelFamily) -> ModelAdapter:
    """Return the adapter for a model family."""
    try:
        return _ADAPTERS[family]
    except KeyError:
        raise ValidationError(f"No adapter for model family: {family}")
