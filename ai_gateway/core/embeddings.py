"""
Embedding analytics.

Semantic search, content similarity, duplicate detection and k-means
clustering built on the embedding path of the orchestrator. Batch
operations embed items independently: a failed item is dropped and the
rest of the batch proceeds.
"""

import asyncio
import logging
import random
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

import numpy as np

from ai_gateway.config.loader import ModelConfig

from .adapters import GenerationRequest
from .errors import DimensionMismatch, GatewayError, ValidationError
from .orchestrator import InvocationOptions, InvocationOrchestrator
from .usage import OperationKind
from .vectors import cosine_similarity, euclidean_distance

logger = logging.getLogger(__name__)

MAX_BATCH_SIZE = 25
DEFAULT_DIMENSIONS = 1536


@dataclass(frozen=True)
class TextItem:
    id: str
    text: str
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class EmbeddingResult:
    embedding: List[float]
    model_used: str
    request_id: str
    cost: float
    cached: bool
    input_units: Optional[int] = None


@dataclass(frozen=True)
class SimilarityResult:
    id: str
    text: str
    similarity: float
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class SearchResponse:
    query: str
    results: List[SimilarityResult]
    query_embedding: List[float]
    total_documents: int
    request_id: str
    cost: float


@dataclass(frozen=True)
class ContentSimilarityResponse:
    source_text: str
    similarities: List[SimilarityResult]
    request_id: str
    cost: float


@dataclass(frozen=True)
class DuplicateGroup:
    """Items similar to ``representative``, the representative listed first."""
    representative: TextItem
    members: List[SimilarityResult]


@dataclass(frozen=True)
class ClusterMember:
    item: TextItem
    distance: float


@dataclass(frozen=True)
class ClusterAssignment:
    cluster_index: int
    centroid: List[float]
    members: List[ClusterMember]


class EmbeddingService:
    """Embedding generation and vector analytics.

    Cluster initialization draws from ``rng``; pass a seeded
    ``random.Random`` for reproducible clusters.
    """

    def __init__(
        self,
        orchestrator: InvocationOrchestrator,
        model: ModelConfig,
        max_batch_size: int = MAX_BATCH_SIZE,
        dimensions: int = DEFAULT_DIMENSIONS,
        rng: Optional[random.Random] = None,
    ):
        if model.family.operation != OperationKind.EMBEDDING:
            raise ValueError(f"Model {model.model_id} is not an embedding model")
        self.orchestrator = orchestrator
        self.model = model
        self.max_batch_size = max_batch_size
        self.dimensions = dimensions
        self._rng = rng or random.Random()

    async def generate_embedding(
        self,
        text: str,
        options: Optional[InvocationOptions] = None,
    ) -> EmbeddingResult:
        """Embed a single text.

        Raises:
            ValidationError: If text is empty
            AdmissionDenied: If the budget is exhausted
            InvocationExhausted: If every model attempt failed
        """
        if not text or not text.strip():
            raise ValidationError("Text is required for embedding generation")

        response = await self.orchestrator.invoke(
            OperationKind.EMBEDDING,
            self.model.selector(),
            GenerationRequest(prompt=text),
            options,
        )
        return EmbeddingResult(
            embedding=list(response.output),
            model_used=response.model_id,
            request_id=response.request_id,
            cost=response.cost,
            cached=response.cached,
            input_units=response.input_units,
        )

    async def batch_generate_embeddings(
        self,
        texts: Sequence[str],
        options: Optional[InvocationOptions] = None,
    ) -> List[Optional[EmbeddingResult]]:
        """Embed up to ``max_batch_size`` texts concurrently.

        Returns:
            One slot per input text, None where that text failed

        Raises:
            ValidationError: If ``texts`` is empty or exceeds the batch ceiling
        """
        self._check_batch(texts, "Texts")

        outcomes = await asyncio.gather(
            *(self.generate_embedding(text, options) for text in texts),
            return_exceptions=True,
        )

        results: List[Optional[EmbeddingResult]] = []
        failures = 0
        for index, outcome in enumerate(outcomes):
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception):
                    raise outcome
                failures += 1
                logger.error("Batch embedding item %d failed: %s", index, outcome)
                results.append(None)
            else:
                results.append(outcome)

        logger.info(
            "Batch embedding completed: %d succeeded, %d failed",
            len(results) - failures, failures,
        )
        return results

    async def semantic_search(
        self,
        query: str,
        documents: Sequence[TextItem],
        top_k: int = 10,
        threshold: float = 0.0,
        options: Optional[InvocationOptions] = None,
    ) -> SearchResponse:
        """Rank documents by cosine similarity to the query.

        Documents below ``threshold`` are dropped, ties keep document order,
        and at most ``top_k`` results are returned. Cost covers the query and
        every document that embedded successfully.
        """
        if not query or not query.strip():
            raise ValidationError("Query is required for semantic search")
        if top_k < 1:
            raise ValidationError("top_k must be >= 1")
        self._check_batch(documents, "Documents")

        query_result = await self.generate_embedding(query, options)
        doc_results = await self.batch_generate_embeddings([d.text for d in documents], options)

        cost = query_result.cost + sum(r.cost for r in doc_results if r is not None)
        matches = self._rank(query_result.embedding, documents, doc_results, threshold)

        logger.info(
            "Semantic search completed: %d results from %d documents",
            min(len(matches), top_k), len(documents),
        )
        return SearchResponse(
            query=query,
            results=matches[:top_k],
            query_embedding=query_result.embedding,
            total_documents=len(documents),
            request_id=query_result.request_id,
            cost=cost,
        )

    async def detect_content_similarity(
        self,
        source_text: str,
        targets: Sequence[TextItem],
        threshold: float = 0.7,
        options: Optional[InvocationOptions] = None,
    ) -> ContentSimilarityResponse:
        """All targets at or above ``threshold`` similarity to ``source_text``."""
        if not source_text or not source_text.strip():
            raise ValidationError("Source text is required for similarity detection")
        self._check_batch(targets, "Target texts")

        source_result = await self.generate_embedding(source_text, options)
        target_results = await self.batch_generate_embeddings([t.text for t in targets], options)

        cost = source_result.cost + sum(r.cost for r in target_results if r is not None)
        return ContentSimilarityResponse(
            source_text=source_text,
            similarities=self._rank(source_result.embedding, targets, target_results, threshold),
            request_id=source_result.request_id,
            cost=cost,
        )

    async def find_duplicates(
        self,
        items: Sequence[TextItem],
        threshold: float = 0.95,
        options: Optional[InvocationOptions] = None,
    ) -> List[DuplicateGroup]:
        """Group near-duplicate items.

        Each not-yet-grouped item collects every later ungrouped item at or
        above ``threshold``; groups without duplicates are omitted.
        """
        self._check_batch(items, "Texts")
        embeddings = await self.batch_generate_embeddings([item.text for item in items], options)

        groups: List[DuplicateGroup] = []
        grouped = set()
        for i, item in enumerate(items):
            if i in grouped or embeddings[i] is None:
                continue
            grouped.add(i)
            members = [SimilarityResult(item.id, item.text, 1.0, item.metadata)]

            for j in range(i + 1, len(items)):
                if j in grouped or embeddings[j] is None:
                    continue
                similarity = cosine_similarity(embeddings[i].embedding, embeddings[j].embedding)
                if similarity >= threshold:
                    other = items[j]
                    members.append(SimilarityResult(other.id, other.text, similarity, other.metadata))
                    grouped.add(j)

            if len(members) > 1:
                members.sort(key=lambda m: m.similarity, reverse=True)
                groups.append(DuplicateGroup(representative=item, members=members))

        logger.info("Duplicate detection found %d groups in %d items", len(groups), len(items))
        return groups

    async def cluster_content(
        self,
        items: Sequence[TextItem],
        k: int,
        max_iterations: int = 100,
        options: Optional[InvocationOptions] = None,
    ) -> List[ClusterAssignment]:
        """Cluster items with k-means over their embeddings.

        Centroids start as ``k`` embeddings drawn uniformly with replacement.
        Iteration stops when no assignment changes or after
        ``max_iterations``; the last state is returned either way.

        Returns:
            Exactly ``k`` clusters by ascending index, members by ascending
            distance to the centroid

        Raises:
            ValidationError: If ``k`` is outside ``[1, len(items)]``
            GatewayError: If no item could be embedded
        """
        if not items:
            raise ValidationError("Texts array is required and must not be empty")
        if k < 1 or k > len(items):
            raise ValidationError("K must be between 1 and the number of texts")
        if max_iterations < 1:
            raise ValidationError("max_iterations must be >= 1")

        embeddings = await self.batch_generate_embeddings([item.text for item in items], options)
        valid = [(item, result.embedding) for item, result in zip(items, embeddings) if result is not None]
        if not valid:
            raise GatewayError("No valid embeddings generated")

        points = self._stack([vector for _, vector in valid])
        n = len(points)
        centroids = np.array([points[self._rng.randrange(n)] for _ in range(k)])

        assignments = np.full(n, -1)
        iteration = 0
        while iteration < max_iterations:
            distances = np.linalg.norm(points[:, None, :] - centroids[None, :, :], axis=2)
            new_assignments = np.argmin(distances, axis=1)
            changed = not np.array_equal(new_assignments, assignments)
            assignments = new_assignments

            for j in range(k):
                members = points[assignments == j]
                # Empty clusters keep their previous centroid
                if len(members) > 0:
                    centroids[j] = members.mean(axis=0)

            iteration += 1
            if not changed:
                break

        clusters = []
        for j in range(k):
            members = [
                ClusterMember(item=item, distance=euclidean_distance(points[i], centroids[j]))
                for i, (item, _) in enumerate(valid)
                if assignments[i] == j
            ]
            members.sort(key=lambda m: m.distance)
            clusters.append(ClusterAssignment(
                cluster_index=j,
                centroid=centroids[j].tolist(),
                members=members,
            ))

        logger.info(
            "Clustered %d items into %d clusters in %d iterations", n, k, iteration
        )
        return clusters

    def stats(self) -> Dict[str, Any]:
        """Supported models and limits of the analytics layer."""
        models = [self.model.model_id]
        if self.model.fallback_model_id:
            models.append(self.model.fallback_model_id)
        return {
            "supported_models": models,
            "max_batch_size": self.max_batch_size,
            "embedding_dimensions": self.dimensions,
            "similarity_methods": ["cosine", "euclidean"],
        }

    def _check_batch(self, batch: Sequence[Any], label: str) -> None:
        if not batch:
            raise ValidationError(f"{label} array is required and must not be empty")
        if len(batch) > self.max_batch_size:
            raise ValidationError(f"Maximum {self.max_batch_size} texts allowed per batch")

    @staticmethod
    def _rank(
        reference: List[float],
        items: Sequence[TextItem],
        results: Sequence[Optional[EmbeddingResult]],
        threshold: float,
    ) -> List[SimilarityResult]:
        matches = []
        for item, result in zip(items, results):
            if result is None:
                continue
            similarity = cosine_similarity(reference, result.embedding)
            if similarity >= threshold:
                matches.append(SimilarityResult(item.id, item.text, similarity, item.metadata))
        # sorted() is stable, so equal scores keep input order
        return sorted(matches, key=lambda m: m.similarity, reverse=True)

    @staticmethod
    def _stack(vectors: Sequence[List[float]]) -> np.ndarray:
        width = len(vectors[0])
        for vector in vectors[1:]:
            if len(vector) != width:
                raise DimensionMismatch(width, len(vector))
        return np.array(vectors, dtype=float)
