"""Top-K cosine similarity search over the on-disk embedding index."""

from __future__ import annotations

import json
import logging
import numbers
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import numpy as np

from .config import Settings
from .errors import ConfigurationError, DataIntegrityError, ValidationError
from .llm import EmbeddingCapability, ensure_vector
from .models import IndexDocument, KnowledgeRecord, ScoredItem

log = logging.getLogger("tarot_rag.retriever")

DEFAULT_TOP_K = 8
DEFAULT_EMBEDDING_MODEL = "nomic-embed-text"
REBUILD_HINT = "Rebuild the index: tarot-rag build-index"


def cosine_similarity(left: Sequence[float], right: Sequence[float]) -> float:
    """Dot product over the shared prefix divided by both full magnitudes.

    Zero-magnitude input scores exactly 0.
    """
    a = np.asarray(left, dtype=np.float64)
    b = np.asarray(right, dtype=np.float64)
    norm_a = float(np.linalg.norm(a))
    norm_b = float(np.linalg.norm(b))
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0
    n = min(a.shape[0], b.shape[0])
    return float(np.dot(a[:n], b[:n]) / (norm_a * norm_b))


def _is_valid_item(item: Any) -> bool:
    if not isinstance(item, dict):
        return False
    if not all(isinstance(item.get(k), str) for k in ("id", "path", "text")):
        return False
    emb = item.get("embedding")
    if not isinstance(emb, list) or not emb:
        return False
    return all(isinstance(x, numbers.Real) and not isinstance(x, bool) for x in emb)


def load_index(index_path: Path) -> IndexDocument:
    """Load and shape-check the index document.

    Malformed items are dropped with a warning; an index without any usable
    item is rejected.
    """
    index_path = Path(index_path)
    if not index_path.is_file():
        raise ConfigurationError(f"Missing RAG index file: {index_path}. {REBUILD_HINT}")
    try:
        raw = json.loads(index_path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigurationError(f"Failed to parse RAG index JSON at {index_path}: {e}. {REBUILD_HINT}") from e
    if not isinstance(raw, dict):
        raise ConfigurationError(f"RAG index at {index_path} is not a JSON object. {REBUILD_HINT}")

    model = raw.get("embeddingModel") or raw.get("embedModel")
    if not isinstance(model, str) or not model.strip():
        model = DEFAULT_EMBEDDING_MODEL

    raw_items = raw.get("items") if isinstance(raw.get("items"), list) else []
    if not raw_items:
        raise ConfigurationError(f"RAG index at {index_path} contains zero items. {REBUILD_HINT}")

    items: List[KnowledgeRecord] = []
    for position, item in enumerate(raw_items):
        if not _is_valid_item(item):
            ident = item.get("id") if isinstance(item, dict) else None
            log.warning("Skipping malformed index item #%d (id=%s)", position, ident)
            continue
        items.append(KnowledgeRecord(id=item["id"], path=item["path"], text=item["text"], embedding=item["embedding"]))

    if not items:
        raise DataIntegrityError(
            f"No item in {index_path} carries a usable embedding. {REBUILD_HINT}"
        )

    return IndexDocument(
        version=int(raw.get("version") or 1),
        created_at=str(raw.get("createdAt") or ""),
        embedding_model=model.strip(),
        item_count=len(items),
        items=items,
    )


def score_items(query_vector: Sequence[float], items: Sequence[KnowledgeRecord]) -> List[ScoredItem]:
    return [
        ScoredItem(
            id=item.id,
            path=item.path,
            text=item.text,
            similarity_score=cosine_similarity(query_vector, item.embedding),
        )
        for item in items
    ]


def select_top(scored: Sequence[ScoredItem], k: int) -> List[ScoredItem]:
    # sorted() is stable, so equal scores keep index order
    ranked = sorted(scored, key=lambda s: s.similarity_score, reverse=True)
    return ranked[:k]


def format_preview(text: str, max_length: int = 220) -> str:
    return " ".join((text or "").split())[:max_length]


class SimilaritySearchEngine:
    """Holds one immutable snapshot of the index per process until reload()."""

    def __init__(self, index_path: Path, embedder: EmbeddingCapability):
        self.index_path = Path(index_path)
        self.embedder = embedder
        self._index: Optional[IndexDocument] = None

    @classmethod
    def from_settings(cls, settings: Settings, embedder: EmbeddingCapability) -> "SimilaritySearchEngine":
        return cls(settings.index_path, embedder)

    @property
    def index(self) -> IndexDocument:
        if self._index is None:
            self._index = load_index(self.index_path)
            log.info(
                "Loaded index %s: %d items, model %s",
                self.index_path, len(self._index.items), self._index.embedding_model,
            )
        return self._index

    def reload(self) -> None:
        self._index = None

    def retrieve(self, query_text: str, k: int = DEFAULT_TOP_K) -> List[ScoredItem]:
        if not isinstance(query_text, str) or not query_text.strip():
            raise ValidationError("Query text must be a non-empty string.")
        if isinstance(k, bool) or not isinstance(k, int) or k <= 0:
            raise ValidationError(f"k must be a positive integer, got {k!r}")

        index = self.index
        raw = self.embedder.embed(index.embedding_model, query_text.strip())
        query_vector = ensure_vector(raw, "query")
        return select_top(score_items(query_vector, index.items), k)

    def stats(self) -> Dict[str, Any]:
        index = self.index
        return {
            "version": index.version,
            "createdAt": index.created_at,
            "embeddingModel": index.embedding_model,
            "itemCount": len(index.items),
        }
