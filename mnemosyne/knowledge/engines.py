"""
Vector Engines

Pluggable nearest-neighbor backends behind the content store.
Supports multiple backends (in-memory, FAISS, Milvus).

Design decisions:
- Abstract interface for backend independence
- Rows are plain dicts; the vector lives under the "vector" key
- Scores are cosine similarity, higher is more relevant
- Deletion by equality filter, reporting how many rows matched
"""

import json
import math
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

import numpy as np

from mnemosyne.config.settings import StoreSettings
from mnemosyne.observability.logging import get_logger

logger = get_logger("mnemosyne.engines")

VECTOR_FIELD = "vector"
SCORE_FIELD = "_score"


def _matches(row: dict[str, Any], filter: dict[str, Any]) -> bool:
    return all(row.get(k) == v for k, v in filter.items())


def _is_zero(vector: list[float]) -> bool:
    return not any(vector)


class VectorCollection(ABC):
    """
    A named set of rows inside an engine.

    Every row carries a vector; all other keys are opaque to the engine.
    """

    def __init__(self, name: str):
        self.name = name

    @abstractmethod
    async def insert(self, rows: list[dict[str, Any]]) -> int:
        """Insert rows, returning how many were written."""
        pass

    @abstractmethod
    async def delete_where(self, filter: dict[str, Any]) -> int:
        """Delete rows whose fields equal every filter value."""
        pass

    @abstractmethod
    async def nearest_neighbors(self, vector: list[float], k: int) -> list[dict[str, Any]]:
        """
        Up to k rows ordered by descending similarity.

        Each returned row is a copy annotated with `_score`.
        """
        pass

    @abstractmethod
    async def count(self) -> int:
        """Number of stored rows."""
        pass


class VectorEngine(ABC):
    """
    Abstract vector engine.

    Connects to a storage location and manages named collections.
    """

    @abstractmethod
    async def connect(self, path: str) -> None:
        """Attach to the storage location."""
        pass

    @abstractmethod
    async def list_collections(self) -> list[str]:
        """Names of existing collections."""
        pass

    @abstractmethod
    async def create_collection(
        self,
        name: str,
        seed_rows: list[dict[str, Any]],
    ) -> VectorCollection:
        """Create a collection; seed rows fix its schema and dimension."""
        pass

    @abstractmethod
    async def open_collection(self, name: str) -> VectorCollection:
        """Open an existing collection."""
        pass


# =============================================================================
# IN-MEMORY
# =============================================================================

class InMemoryCollection(VectorCollection):
    """
    Brute-force cosine search over rows held in a list.

    Optionally mirrored to a JSON file after every write.
    """

    def __init__(self, name: str, rows: list[dict[str, Any]] | None = None, file: Path | None = None):
        super().__init__(name)
        self._rows: list[dict[str, Any]] = rows or []
        self._file = file

    def _save(self) -> None:
        if self._file is None:
            return
        self._file.parent.mkdir(parents=True, exist_ok=True)
        with open(self._file, "w", encoding="utf-8") as f:
            json.dump({"name": self.name, "rows": self._rows}, f)

    async def insert(self, rows: list[dict[str, Any]]) -> int:
        self._rows.extend(dict(row) for row in rows)
        self._save()
        return len(rows)

    async def delete_where(self, filter: dict[str, Any]) -> int:
        kept = [row for row in self._rows if not _matches(row, filter)]
        deleted = len(self._rows) - len(kept)
        if deleted:
            self._rows = kept
            self._save()
        return deleted

    async def nearest_neighbors(self, vector: list[float], k: int) -> list[dict[str, Any]]:
        if not self._rows or k <= 0:
            return []

        matrix = np.asarray([row[VECTOR_FIELD] for row in self._rows], dtype=np.float64)
        query = np.asarray(vector, dtype=np.float64)

        dots = matrix @ query
        norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
        scores = np.divide(dots, norms, out=np.zeros_like(dots), where=norms > 0)

        # Stable so ties (e.g. a zero-vector scan) keep insertion order
        order = np.argsort(-scores, kind="stable")[:k]

        return [
            {**self._rows[i], SCORE_FIELD: float(scores[i])}
            for i in order
        ]

    async def count(self) -> int:
        return len(self._rows)


class InMemoryEngine(VectorEngine):
    """
    Simple in-memory engine for development and testing.

    With `persist=True` each collection is written to `<path>/<name>.json`.
    """

    def __init__(self, persist: bool = False):
        self._persist = persist
        self._root: Path | None = None
        self._collections: dict[str, InMemoryCollection] = {}

    def _file_for(self, name: str) -> Path | None:
        if not self._persist or self._root is None:
            return None
        return self._root / f"{name}.json"

    async def connect(self, path: str) -> None:
        self._root = Path(path)
        if self._persist:
            self._root.mkdir(parents=True, exist_ok=True)

    async def list_collections(self) -> list[str]:
        names = set(self._collections)
        if self._persist and self._root is not None and self._root.exists():
            names.update(p.stem for p in self._root.glob("*.json"))
        return sorted(names)

    async def create_collection(
        self,
        name: str,
        seed_rows: list[dict[str, Any]],
    ) -> VectorCollection:
        collection = InMemoryCollection(name, file=self._file_for(name))
        await collection.insert(seed_rows)
        self._collections[name] = collection
        return collection

    async def open_collection(self, name: str) -> VectorCollection:
        if name in self._collections:
            return self._collections[name]

        file = self._file_for(name)
        if file is None or not file.exists():
            raise KeyError(f"Collection {name!r} does not exist")

        with open(file, encoding="utf-8") as f:
            state = json.load(f)

        collection = InMemoryCollection(name, rows=state.get("rows", []), file=file)
        self._collections[name] = collection
        return collection


# =============================================================================
# FAISS
# =============================================================================

class FAISSCollection(VectorCollection):
    """
    FAISS-backed collection.

    Uses an ID-mapped flat inner-product index over L2-normalized
    vectors, which makes inner product equal to cosine similarity.
    Row payloads live beside the index in a JSON state file.

    Limitations:
    - Whole index rewritten on every write
    - Single-node only
    """

    def __init__(self, name: str, index, directory: Path, rows: dict[int, dict[str, Any]], next_id: int):
        super().__init__(name)
        self._index = index
        self._directory = directory
        self._rows = rows
        self._next_id = next_id

    @staticmethod
    def _normalize(vector: list[float]) -> list[float]:
        """L2 normalize embedding for cosine similarity."""
        norm = math.sqrt(sum(x * x for x in vector))
        if norm > 0:
            return [x / norm for x in vector]
        return list(vector)

    def _save(self) -> None:
        import faiss

        self._directory.mkdir(parents=True, exist_ok=True)
        faiss.write_index(self._index, str(self._directory / "index.faiss"))

        state = {
            "rows": {str(k): v for k, v in self._rows.items()},
            "next_id": self._next_id,
        }
        with open(self._directory / "state.json", "w", encoding="utf-8") as f:
            json.dump(state, f)

    async def insert(self, rows: list[dict[str, Any]]) -> int:
        if not rows:
            return 0

        ids = np.arange(self._next_id, self._next_id + len(rows), dtype=np.int64)
        vectors = np.asarray(
            [self._normalize(row[VECTOR_FIELD]) for row in rows],
            dtype=np.float32,
        )

        self._index.add_with_ids(vectors, ids)

        for internal_id, row in zip(ids.tolist(), rows):
            self._rows[internal_id] = dict(row)
        self._next_id += len(rows)

        self._save()
        return len(rows)

    async def delete_where(self, filter: dict[str, Any]) -> int:
        doomed = [i for i, row in self._rows.items() if _matches(row, filter)]
        if not doomed:
            return 0

        self._index.remove_ids(np.asarray(doomed, dtype=np.int64))
        for internal_id in doomed:
            del self._rows[internal_id]

        self._save()
        return len(doomed)

    async def nearest_neighbors(self, vector: list[float], k: int) -> list[dict[str, Any]]:
        if self._index.ntotal == 0 or k <= 0:
            return []

        query = np.asarray([self._normalize(vector)], dtype=np.float32)
        distances, indices = self._index.search(query, min(k, self._index.ntotal))

        results = []
        for score, idx in zip(distances[0], indices[0]):
            if idx == -1:
                continue
            row = self._rows.get(int(idx))
            if row is None:
                continue
            results.append({**row, SCORE_FIELD: float(score)})

        return results

    async def count(self) -> int:
        return len(self._rows)


class FAISSEngine(VectorEngine):
    """
    FAISS-based engine.

    Uses Facebook AI Similarity Search for efficient local vector search.
    Each collection is a directory holding `index.faiss` and `state.json`.
    """

    def __init__(self):
        self._root: Path | None = None
        self._collections: dict[str, FAISSCollection] = {}

    def _faiss(self):
        try:
            import faiss
        except ImportError:
            raise ImportError(
                "faiss required. Install with: pip install faiss-cpu "
                "or pip install faiss-gpu"
            )
        return faiss

    def _directory(self, name: str) -> Path:
        if self._root is None:
            raise RuntimeError("FAISS engine is not connected")
        return self._root / name

    async def connect(self, path: str) -> None:
        self._faiss()
        self._root = Path(path)
        self._root.mkdir(parents=True, exist_ok=True)

    async def list_collections(self) -> list[str]:
        if self._root is None:
            return sorted(self._collections)
        on_disk = {p.parent.name for p in self._root.glob("*/index.faiss")}
        return sorted(on_disk | set(self._collections))

    async def create_collection(
        self,
        name: str,
        seed_rows: list[dict[str, Any]],
    ) -> VectorCollection:
        if not seed_rows:
            raise ValueError("FAISS collections need at least one seed row to fix the dimension")

        faiss = self._faiss()
        dimension = len(seed_rows[0][VECTOR_FIELD])
        index = faiss.IndexIDMap2(faiss.IndexFlatIP(dimension))

        collection = FAISSCollection(name, index, self._directory(name), rows={}, next_id=0)
        await collection.insert(seed_rows)
        self._collections[name] = collection

        logger.info("Created FAISS collection", collection=name, dimension=dimension)
        return collection

    async def open_collection(self, name: str) -> VectorCollection:
        if name in self._collections:
            return self._collections[name]

        faiss = self._faiss()
        directory = self._directory(name)
        index_file = directory / "index.faiss"
        state_file = directory / "state.json"

        if not index_file.exists():
            raise KeyError(f"Collection {name!r} does not exist")

        index = faiss.read_index(str(index_file))
        rows: dict[int, dict[str, Any]] = {}
        next_id = 0

        if state_file.exists():
            with open(state_file, encoding="utf-8") as f:
                state = json.load(f)
            rows = {int(k): v for k, v in state["rows"].items()}
            next_id = state["next_id"]

        collection = FAISSCollection(name, index, directory, rows=rows, next_id=next_id)
        self._collections[name] = collection
        return collection


# =============================================================================
# MILVUS
# =============================================================================

class MilvusCollection(VectorCollection):
    """Collection inside a Milvus (or Milvus Lite) database."""

    def __init__(self, name: str, client):
        super().__init__(name)
        self._client = client

    @staticmethod
    def _expression(filter: dict[str, Any]) -> str:
        """Equality filter as a Milvus boolean expression."""
        return " and ".join(f"{k} == {json.dumps(v)}" for k, v in filter.items())

    async def insert(self, rows: list[dict[str, Any]]) -> int:
        if not rows:
            return 0
        result = self._client.insert(collection_name=self.name, data=rows)
        return int(result.get("insert_count", len(rows)))

    async def delete_where(self, filter: dict[str, Any]) -> int:
        result = self._client.delete(collection_name=self.name, filter=self._expression(filter))
        if isinstance(result, dict):
            return int(result.get("delete_count", 0))
        return len(result)

    async def nearest_neighbors(self, vector: list[float], k: int) -> list[dict[str, Any]]:
        if k <= 0:
            return []

        # Cosine is undefined for the zero vector; treat it as a plain scan
        if _is_zero(vector):
            rows = self._client.query(
                collection_name=self.name,
                filter="",
                limit=k,
                output_fields=["*"],
            )
            return [{**row, SCORE_FIELD: 0.0} for row in rows]

        results = self._client.search(
            collection_name=self.name,
            data=[vector],
            limit=k,
            output_fields=["*"],
        )

        output = []
        for hit in results[0]:
            entity = hit.get("entity", {})
            output.append({
                **entity,
                "id": str(hit.get("id")),
                SCORE_FIELD: float(hit.get("distance", 0.0)),
            })
        return output

    async def count(self) -> int:
        stats = self._client.get_collection_stats(collection_name=self.name)
        return int(stats.get("row_count", 0))


class MilvusEngine(VectorEngine):
    """
    Milvus-based engine.

    A local `.db` path runs Milvus Lite; an http(s) URI targets a server.
    Production-grade distributed vector database.
    """

    def __init__(self, uri: str | None = None, token: str = ""):
        self._uri = uri
        self._token = token
        self._client = None

    def _require_client(self):
        if self._client is None:
            raise RuntimeError("Milvus engine is not connected")
        return self._client

    async def connect(self, path: str) -> None:
        try:
            from pymilvus import MilvusClient
        except ImportError:
            raise ImportError(
                "pymilvus required. Install with: pip install pymilvus"
            )

        uri = self._uri or str(Path(path) / "milvus.db")
        self._client = MilvusClient(uri=uri, token=self._token)

    async def list_collections(self) -> list[str]:
        return list(self._require_client().list_collections())

    async def create_collection(
        self,
        name: str,
        seed_rows: list[dict[str, Any]],
    ) -> VectorCollection:
        if not seed_rows:
            raise ValueError("Milvus collections need at least one seed row to fix the dimension")

        client = self._require_client()
        dimension = len(seed_rows[0][VECTOR_FIELD])

        client.create_collection(
            collection_name=name,
            dimension=dimension,
            primary_field_name="id",
            id_type="string",
            max_length=512,
            vector_field_name=VECTOR_FIELD,
            metric_type="COSINE",
            auto_id=False,
            enable_dynamic_field=True,
        )

        collection = MilvusCollection(name, client)
        await collection.insert(seed_rows)

        logger.info("Created Milvus collection", collection=name, dimension=dimension)
        return collection

    async def open_collection(self, name: str) -> VectorCollection:
        client = self._require_client()
        if not client.has_collection(collection_name=name):
            raise KeyError(f"Collection {name!r} does not exist")
        client.load_collection(collection_name=name)
        return MilvusCollection(name, client)


def create_engine(settings: StoreSettings | None = None) -> VectorEngine:
    """Build the configured vector engine."""
    settings = settings or StoreSettings()

    if settings.engine == "faiss":
        return FAISSEngine()
    if settings.engine == "milvus":
        return MilvusEngine()
    return InMemoryEngine(persist=settings.persist)
