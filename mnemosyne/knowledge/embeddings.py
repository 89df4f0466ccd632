"""
Embedding Service

Generate fixed-dimension vector embeddings for passages and queries.
Abstracts different embedding providers.

Design decisions:
- Provider-agnostic interface
- Batch embedding for efficiency
- Dimension normalization (pad or truncate to the configured size)
- Never fail fatally: a degraded zero vector beats losing the document
"""

import hashlib
import math
import re
from abc import ABC, abstractmethod
from typing import Any

from mnemosyne.observability.logging import get_logger

logger = get_logger("mnemosyne.embeddings")


class EmbeddingService(ABC):
    """
    Abstract embedding service.

    Subclasses implement `_generate` (and optionally `_generate_batch`);
    the public methods guarantee the output contract:
    - every vector has exactly `dimension` floats
    - errors degrade to a zero vector instead of propagating
    - batches preserve input order and length
    """

    def __init__(self, dimension: int, batch_size: int = 20):
        if dimension <= 0:
            raise ValueError("dimension must be positive")
        if batch_size <= 0:
            raise ValueError("batch_size must be positive")
        self._dimension = dimension
        self._batch_size = batch_size

    @property
    def dimension(self) -> int:
        """Embedding dimension."""
        return self._dimension

    @property
    def batch_size(self) -> int:
        """Most texts sent to the provider in one call."""
        return self._batch_size

    @abstractmethod
    async def _generate(self, text: str) -> list[float]:
        """Provider-specific embedding of a single text."""
        pass

    async def _generate_batch(self, texts: list[str]) -> list[list[float]]:
        """Provider-specific batch embedding; defaults to one call per text."""
        return [await self._generate(text) for text in texts]

    def zero_vector(self) -> list[float]:
        return [0.0] * self._dimension

    def _fit(self, vector: Any) -> list[float]:
        """Pad with zeros or truncate to the configured dimension."""
        values = [float(v) for v in vector][: self._dimension]
        if len(values) < self._dimension:
            values.extend([0.0] * (self._dimension - len(values)))
        return values

    async def embed(self, text: str) -> list[float]:
        """Generate embedding for a single text."""
        try:
            return self._fit(await self._generate(text))
        except Exception as e:
            logger.error(
                "Embedding failed, using zero vector",
                error=e,
                provider=type(self).__name__,
                text_length=len(text) if isinstance(text, str) else None,
            )
            return self.zero_vector()

    async def _embed_slice(self, texts: list[str]) -> list[list[float]]:
        try:
            vectors = await self._generate_batch(texts)
            if len(vectors) != len(texts):
                raise ValueError(f"Provider returned {len(vectors)} vectors for {len(texts)} texts")
            return [self._fit(v) for v in vectors]
        except Exception as e:
            logger.warning(
                "Batch embedding failed, embedding texts individually",
                error=str(e),
                batch_size=len(texts),
            )
            return [await self.embed(text) for text in texts]

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """
        Generate embeddings for multiple texts, in input order.

        Texts go to the provider at most `batch_size` at a time; a failing
        slice falls back to one call per text without affecting the others.
        """
        vectors: list[list[float]] = []
        for start in range(0, len(texts), self._batch_size):
            vectors.extend(await self._embed_slice(texts[start:start + self._batch_size]))
        return vectors


def _stable_hash(token: str) -> int:
    """Process-independent integer hash of a token."""
    return int.from_bytes(hashlib.md5(token.encode("utf-8")).digest()[:8], "big")


def _normalize(vector: list[float]) -> list[float]:
    """L2 normalize; zero vectors are returned unchanged."""
    norm = math.sqrt(sum(x * x for x in vector))
    if norm > 0:
        return [x / norm for x in vector]
    return vector


class HashEmbeddings(EmbeddingService):
    """
    Deterministic, dependency-free embeddings.

    Layout of the vector:
    - first half: hashed word frequencies
    - second half (minus two slots): hashed character trigram frequencies
    - last two slots: text length and word count statistics

    The result is L2-normalized, so every value lies in [-1, 1].
    Suitable for development and tests; not a semantic model.
    """

    EMPTY_TEXT_SEED = "empty_text_placeholder"

    def __init__(self, dimension: int = 384, ngram_size: int = 3, batch_size: int = 20):
        super().__init__(dimension, batch_size)
        self._ngram_size = ngram_size

        self._stat_slots = 2 if dimension >= 4 else 0
        self._word_slots = dimension // 2
        self._ngram_slots = dimension - self._word_slots - self._stat_slots

    def _preprocess(self, text: str) -> str:
        text = re.sub(r"[^\w\s]", " ", text.lower())
        return re.sub(r"\s+", " ", text).strip()

    def _seeded_vector(self, seed: str) -> list[float]:
        """Vector derived from a sha256 digest, values spread over [-1, 1]."""
        digest = hashlib.sha256(seed.encode("utf-8")).hexdigest()
        vector = []
        for i in range(self._dimension):
            offset = (i * 2) % len(digest)
            byte = int(digest[offset:offset + 2], 16)
            vector.append(byte / 255 * 2 - 1)
        return _normalize(vector)

    async def _generate(self, text: str) -> list[float]:
        if not text or not text.strip():
            return self._seeded_vector(self.EMPTY_TEXT_SEED)

        processed = self._preprocess(text) or "short_text"
        vector = [0.0] * self._dimension

        if self._word_slots:
            words = [w for w in processed.split(" ") if len(w) > 2]
            counts: dict[str, int] = {}
            for word in words:
                counts[word] = counts.get(word, 0) + 1
            for word, count in counts.items():
                vector[_stable_hash(word) % self._word_slots] += count / len(words)

        if self._ngram_slots:
            total = len(processed) - self._ngram_size + 1
            for i in range(max(total, 0)):
                ngram = processed[i:i + self._ngram_size]
                index = self._word_slots + _stable_hash(ngram) % self._ngram_slots
                vector[index] += 1 / total

        if self._stat_slots:
            vector[-2] = min(len(processed) / 1000, 1.0)
            vector[-1] = min(len(processed.split(" ")) / 100, 1.0)

        normalized = _normalize(vector)
        if not any(normalized):
            return self._seeded_vector(text)
        return normalized


class OpenAIEmbeddings(EmbeddingService):
    """
    OpenAI embedding service.

    Uses text-embedding-3-small/large models. Requested at the
    configured dimension so no padding is normally needed.
    """

    def __init__(
        self,
        dimension: int = 1536,
        api_key: str | None = None,
        model: str = "text-embedding-3-small",
        batch_size: int = 20,
    ):
        super().__init__(dimension, batch_size)
        self._model = model
        self._api_key = api_key
        self._client = None

        # Cache for repeated texts
        self._cache: dict[str, list[float]] = {}

    def _get_client(self):
        if self._client is None:
            try:
                from openai import AsyncOpenAI
            except ImportError:
                raise ImportError("openai package required. Install with: pip install openai")

            kwargs = {}
            if self._api_key:
                kwargs["api_key"] = self._api_key

            self._client = AsyncOpenAI(**kwargs)
        return self._client

    def _cache_key(self, text: str) -> str:
        return hashlib.md5(text.encode()).hexdigest()

    async def _generate(self, text: str) -> list[float]:
        return (await self._generate_batch([text]))[0]

    async def _generate_batch(self, texts: list[str]) -> list[list[float]]:
        results: list[list[float] | None] = [None] * len(texts)
        uncached: list[tuple[int, str]] = []

        for i, text in enumerate(texts):
            cached = self._cache.get(self._cache_key(text))
            if cached is not None:
                results[i] = cached
            else:
                uncached.append((i, text))

        if uncached:
            client = self._get_client()
            response = await client.embeddings.create(
                model=self._model,
                input=[text for _, text in uncached],
                dimensions=self._dimension,
            )

            for (original_idx, text), data in zip(uncached, response.data):
                results[original_idx] = data.embedding
                self._cache[self._cache_key(text)] = data.embedding

        return [r if r is not None else self.zero_vector() for r in results]


class LocalEmbeddings(EmbeddingService):
    """
    Local embedding service using sentence-transformers.

    Runs on CPU/GPU locally, no API calls needed.
    Model output is padded or truncated to the configured dimension.
    """

    def __init__(
        self,
        dimension: int = 384,
        model_name: str = "all-MiniLM-L6-v2",
        device: str = "cpu",
        batch_size: int = 20,
    ):
        super().__init__(dimension, batch_size)
        self._model_name = model_name
        self._device = device
        self._model = None

    def _get_model(self):
        if self._model is None:
            try:
                from sentence_transformers import SentenceTransformer
            except ImportError:
                raise ImportError(
                    "sentence-transformers required. Install with: "
                    "pip install sentence-transformers"
                )

            self._model = SentenceTransformer(self._model_name, device=self._device)
        return self._model

    async def _generate(self, text: str) -> list[float]:
        model = self._get_model()
        return model.encode(text, convert_to_numpy=True, normalize_embeddings=True).tolist()

    async def _generate_batch(self, texts: list[str]) -> list[list[float]]:
        model = self._get_model()
        return model.encode(texts, convert_to_numpy=True, normalize_embeddings=True).tolist()
