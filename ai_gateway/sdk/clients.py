"""
Inference API transports.

Each transport sends an already-built model payload to its provider and
returns the decoded response body as a dict. Transports neither retry nor
record usage; the orchestrator owns both.
"""

import asyncio
import json
import logging
from typing import Any, Dict, Optional, Protocol

import boto3
from openai import AsyncOpenAI

from ..core.errors import ValidationError
from ..core.families import ModelFamily, Provider

logger = logging.getLogger(__name__)


class InferenceClient(Protocol):
    """Contract for sending one request to an external inference API."""

    async def invoke(self, model_id: str, payload: Dict[str, Any], family: ModelFamily) -> Dict[str, Any]:
        ...


class BedrockInferenceClient:
    """AWS Bedrock runtime transport.

    boto3 is blocking, so each call runs in a worker thread to keep other
    invocations (and their backoff) independent.
    """

    def __init__(self, region: str, client: Optional[Any] = None):
        """Initialize the Bedrock transport.

        Args:
            region: AWS region (required)
            client: Pre-built ``bedrock-runtime`` client, mainly for tests

        Raises:
            ValueError: If region is missing/empty
        """
        if not region or not region.strip():
            raise ValueError("region is required and cannot be empty")
        self.region = region
        self.client = client or boto3.client("bedrock-runtime", region_name=region)
        logger.info("Initialized Bedrock client in region %s", region)

    async def invoke(self, model_id: str, payload: Dict[str, Any], family: ModelFamily) -> Dict[str, Any]:
        return await asyncio.to_thread(self._invoke_sync, model_id, payload)

    def _invoke_sync(self, model_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        response = self.client.invoke_model(
            modelId=model_id,
            contentType="application/json",
            accept="application/json",
            body=json.dumps(payload),
        )
        return json.loads(response["body"].read())


class OpenAIInferenceClient:
    """OpenAI transport for chat, embedding and image families."""

    def __init__(self, api_key: Optional[str] = None, client: Optional[AsyncOpenAI] = None):
        """Initialize the OpenAI transport.

        Args:
            api_key: API key, falls back to the OPENAI_API_KEY environment variable
            client: Pre-built AsyncOpenAI client, mainly for tests
        """
        self.client = client or AsyncOpenAI(api_key=api_key)

    async def invoke(self, model_id: str, payload: Dict[str, Any], family: ModelFamily) -> Dict[str, Any]:
        if family == ModelFamily.OPENAI_CHAT:
            response = await self.client.chat.completions.create(model=model_id, **payload)
        elif family == ModelFamily.OPENAI_EMBEDDING:
            response = await self.client.embeddings.create(model=model_id, **payload)
        elif family == ModelFamily.OPENAI_IMAGE:
            response = await self.client.images.generate(model=model_id, **payload)
        else:
            raise ValidationError(f"OpenAI transport cannot serve model family {family.value}")
        return response.model_dump()


class ProviderRouter:
    """Dispatches each call to the transport that serves its family."""

    def __init__(
        self,
        bedrock: Optional[InferenceClient] = None,
        openai: Optional[InferenceClient] = None,
    ):
        self._clients = {
            Provider.BEDROCK: bedrock,
            Provider.OPENAI: openai,
        }

    async def invoke(self, model_id: str, payload: Dict[str, Any], family: ModelFamily) -> Dict[str, Any]:
        client = self._clients.get(family.provider)
        if client is None:
            raise ValidationError(f"No transport configured for provider {family.provider.value}")
        return await client.invoke(model_id, payload, family)
