"""
Text and image generation services.

Thin layers over the orchestrator that resolve a configured model key,
shape the request and unpack the model output.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from ai_gateway.config.loader import ModelConfig

from .adapters import GenerationRequest, ImageArtifact, ImageStyle
from .errors import ValidationError
from .orchestrator import InvocationOptions, InvocationOrchestrator
from .usage import OperationKind

logger = logging.getLogger(__name__)

MAX_VARIATIONS = 10


@dataclass(frozen=True)
class TextGenerationRequest:
    prompt: str
    model: str = "claude"
    parameters: Dict[str, Any] = field(default_factory=dict)
    options: Optional[InvocationOptions] = None


@dataclass(frozen=True)
class TextGenerationResult:
    text: str
    model_used: str
    request_id: str
    cost: float
    cached: bool
    input_units: Optional[int] = None
    output_units: Optional[int] = None


@dataclass(frozen=True)
class ImageGenerationResult:
    images: List[ImageArtifact]
    model_used: str
    request_id: str
    cost: float
    cached: bool


def _models_for(models: Mapping[str, ModelConfig], kind: OperationKind) -> Dict[str, ModelConfig]:
    return {key: model for key, model in models.items() if model.family.operation == kind}


async def _gather_successes(coroutines, label: str) -> List[Any]:
    outcomes = await asyncio.gather(*coroutines, return_exceptions=True)
    results = []
    for index, outcome in enumerate(outcomes):
        if isinstance(outcome, BaseException):
            if not isinstance(outcome, Exception):
                raise outcome
            logger.error("%s item %d failed: %s", label, index, outcome)
        else:
            results.append(outcome)
    logger.info(
        "%s completed: %d succeeded, %d failed",
        label, len(results), len(outcomes) - len(results),
    )
    return results


class TextGenerationService:
    """Text generation over the configured text models."""

    def __init__(self, orchestrator: InvocationOrchestrator, models: Mapping[str, ModelConfig]):
        self.orchestrator = orchestrator
        self.models = _models_for(models, OperationKind.TEXT)

    async def generate_text(
        self,
        prompt: str,
        model: str = "claude",
        parameters: Optional[Dict[str, Any]] = None,
        options: Optional[InvocationOptions] = None,
    ) -> TextGenerationResult:
        """Generate text with a configured model.

        Args:
            prompt: Prompt text
            model: Configured model key (e.g. "claude", "titan", "cohere")
            parameters: Overrides for the model's generation defaults
            options: Cache, retry and attribution options

        Raises:
            ValidationError: If the prompt is empty or the model key unknown
        """
        if not prompt or not prompt.strip():
            raise ValidationError("Prompt is required for text generation")
        if model not in self.models:
            raise ValidationError(f"Unsupported model: {model}")

        response = await self.orchestrator.invoke(
            OperationKind.TEXT,
            self.models[model].selector(),
            GenerationRequest(prompt=prompt, parameters=dict(parameters or {})),
            options,
        )
        return TextGenerationResult(
            text=response.output,
            model_used=response.model_id,
            request_id=response.request_id,
            cost=response.cost,
            cached=response.cached,
            input_units=response.input_units,
            output_units=response.output_units,
        )

    async def batch_generate(self, requests: List[TextGenerationRequest]) -> List[TextGenerationResult]:
        """Run requests concurrently; failed requests are logged and dropped."""
        return await _gather_successes(
            (
                self.generate_text(r.prompt, r.model, r.parameters, r.options)
                for r in requests
            ),
            "Batch text generation",
        )

    def stats(self) -> Dict[str, Any]:
        return {"models_supported": sorted(self.models)}


class ImageGenerationService:
    """Image generation over the configured image model."""

    def __init__(
        self,
        orchestrator: InvocationOrchestrator,
        models: Mapping[str, ModelConfig],
        model_key: str = "stable_diffusion",
    ):
        image_models = _models_for(models, OperationKind.IMAGE)
        if model_key not in image_models:
            raise ValueError(f"No image model configured under '{model_key}'")
        self.orchestrator = orchestrator
        self.model = image_models[model_key]

    async def generate_image(
        self,
        prompt: str,
        style: Optional[ImageStyle] = None,
        negative_prompt: Optional[str] = None,
        parameters: Optional[Dict[str, Any]] = None,
        options: Optional[InvocationOptions] = None,
    ) -> ImageGenerationResult:
        if not prompt or not prompt.strip():
            raise ValidationError("Prompt is required for image generation")

        response = await self.orchestrator.invoke(
            OperationKind.IMAGE,
            self.model.selector(),
            GenerationRequest(
                prompt=prompt,
                parameters=dict(parameters or {}),
                negative_prompt=negative_prompt,
                style=style,
            ),
            options,
        )
        return ImageGenerationResult(
            images=response.output,
            model_used=response.model_id,
            request_id=response.request_id,
            cost=response.cost,
            cached=response.cached,
        )

    async def generate_variations(
        self,
        prompt: str,
        count: int = 3,
        style: Optional[ImageStyle] = None,
        negative_prompt: Optional[str] = None,
        parameters: Optional[Dict[str, Any]] = None,
        options: Optional[InvocationOptions] = None,
    ) -> List[ImageGenerationResult]:
        """Generate ``count`` images whose seeds step up from the base seed.

        Failed variations are logged and dropped.

        Raises:
            ValidationError: If ``count`` is outside 1..10
        """
        if count < 1 or count > MAX_VARIATIONS:
            raise ValidationError(f"Variation count must be between 1 and {MAX_VARIATIONS}")

        params = dict(parameters or {})
        base_seed = params.get("seed")
        if base_seed is None:
            base_seed = self.model.parameters.get("seed") or 0

        return await _gather_successes(
            (
                self.generate_image(
                    prompt, style, negative_prompt,
                    {**params, "seed": base_seed + index}, options,
                )
                for index in range(count)
            ),
            "Image variation generation",
        )

    def stats(self) -> Dict[str, Any]:
        models = [self.model.model_id]
        if self.model.fallback_model_id:
            models.append(self.model.fallback_model_id)
        return {
            "supported_models": models,
            "supported_styles": [style.value for style in ImageStyle],
            "max_image_size": {"width": 1024, "height": 1024},
            "supported_formats": ["base64"],
        }
