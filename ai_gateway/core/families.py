"""
Model families and model selection.

A model family is a class of external models sharing one request/response
shape. Families form a closed set; each one maps to exactly one adapter.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

from .usage import OperationKind


class Provider(Enum):
    """Transport that serves a model family."""
    BEDROCK = "bedrock"
    OPENAI = "openai"


class ModelFamily(Enum):
    """Supported model families."""
    ANTHROPIC_CLAUDE = "anthropic_claude"
    AMAZON_TITAN_TEXT = "amazon_titan_text"
    COHERE_COMMAND = "cohere_command"
    STABILITY_DIFFUSION = "stability_diffusion"
    AMAZON_TITAN_EMBED = "amazon_titan_embed"
    OPENAI_CHAT = "openai_chat"
    OPENAI_EMBEDDING = "openai_embedding"
    OPENAI_IMAGE = "openai_image"

    @property
    def provider(self) -> Provider:
        if self in _OPENAI_FAMILIES:
            return Provider.OPENAI
        return Provider.BEDROCK

    @property
    def operation(self) -> OperationKind:
        return _FAMILY_OPERATIONS[self]


_OPENAI_FAMILIES = frozenset({
    ModelFamily.OPENAI_CHAT,
    ModelFamily.OPENAI_EMBEDDING,
    ModelFamily.OPENAI_IMAGE,
})

_FAMILY_OPERATIONS = {
    ModelFamily.ANTHROPIC_CLAUDE: OperationKind.TEXT,
    ModelFamily.AMAZON_TITAN_TEXT: OperationKind.TEXT,
    ModelFamily.COHERE_COMMAND: OperationKind.TEXT,
    ModelFamily.OPENAI_CHAT: OperationKind.TEXT,
    ModelFamily.STABILITY_DIFFUSION: OperationKind.IMAGE,
    ModelFamily.OPENAI_IMAGE: OperationKind.IMAGE,
    ModelFamily.AMAZON_TITAN_EMBED: OperationKind.EMBEDDING,
    ModelFamily.OPENAI_EMBEDDING: OperationKind.EMBEDDING,
}


@dataclass(frozen=True)
class ModelSpec:
    """One concrete model with its default generation parameters."""
    model_id: str
    family: ModelFamily
    parameters: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ModelSelector:
    """Primary model with an optional fallback."""
    primary: ModelSpec
    fallback: Optional[ModelSpec] = None
