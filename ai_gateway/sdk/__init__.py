"""
SDK for AI Gateway.

Provides the transports that talk to external inference APIs.
"""

from .clients import (
    BedrockInferenceClient,
    InferenceClient,
    OpenAIInferenceClient,
    ProviderRouter,
)

__all__ = [
    "BedrockInferenceClient",
    "InferenceClient",
    "OpenAIInferenceClient",
    "ProviderRouter",
]
