"""Offline build of the embedding index.

Every non-empty knowledge file becomes one KnowledgeRecord whose id is
``<path>::<sha1 of trimmed text>``. Items are ordered by path so that an
unchanged corpus produces an identical document apart from ``createdAt``.
"""

from __future__ import annotations

import hashlib
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from .config import Settings
from .corpus import KnowledgeCorpusReader
from .errors import ConfigurationError, DataIntegrityError, UpstreamServiceError
from .llm import EmbeddingCapability, ensure_vector
from .models import IndexDocument, KnowledgeRecord
from .utils.atomic import write_json_atomic

log = logging.getLogger("tarot_rag.index")

INDEX_VERSION = 1


def content_hash(text: str) -> str:
    return hashlib.sha1(text.encode("utf-8")).hexdigest()


def record_id(path: str, text: str) -> str:
    return f"{path}::{content_hash(text)}"


class EmbeddingIndexBuilder:
    def __init__(self, corpus: KnowledgeCorpusReader, embedder: EmbeddingCapability, embedding_model: str):
        self.corpus = corpus
        self.embedder = embedder
        self.embedding_model = embedding_model

    @classmethod
    def from_settings(cls, settings: Settings, embedder: EmbeddingCapability) -> "EmbeddingIndexBuilder":
        corpus = KnowledgeCorpusReader(settings.knowledge_root, settings.knowledge_extensions())
        return cls(corpus, embedder, settings.embedding_model)

    def build(self) -> IndexDocument:
        if not self.corpus.exists():
            raise ConfigurationError(
                f"Missing knowledge folder: {self.corpus.root}. "
                "Create it and add .txt or .md files."
            )

        paths = self.corpus.list_files()
        if not paths:
            raise ConfigurationError(
                f"No knowledge files ({', '.join(self.corpus.extensions)}) found under {self.corpus.root}."
            )

        log.info("Found %d knowledge files; embedding with model %s", len(paths), self.embedding_model)

        items: List[KnowledgeRecord] = []
        dimension: Optional[int] = None
        for path in paths:
            text = self.corpus.read(path).strip()
            if not text:
                log.info("Skipping empty file: %s", path)
                continue

            log.info("Embedding file: %s", path)
            try:
                raw = self.embedder.embed(self.embedding_model, text)
                vector = ensure_vector(raw, f"file {path}")
            except UpstreamServiceError as e:
                raise UpstreamServiceError(f"Embedding failed for file {path}: {e}") from e

            if dimension is None:
                dimension = len(vector)
            elif len(vector) != dimension:
                raise DataIntegrityError(
                    f"Embedding for {path} has {len(vector)} dimensions, expected {dimension} "
                    f"(model {self.embedding_model})"
                )

            items.append(KnowledgeRecord(id=record_id(path, text), path=path, text=text, embedding=vector))

        if not items:
            raise ConfigurationError(
                f"All knowledge files under {self.corpus.root} were empty (or whitespace only)."
            )

        return IndexDocument(
            version=INDEX_VERSION,
            created_at=datetime.now(timezone.utc).isoformat(),
            embedding_model=self.embedding_model,
            item_count=len(items),
            items=items,
        )


def write_index(document: IndexDocument, index_path: Path) -> None:
    write_json_atomic(index_path, document.model_dump(by_alias=True))
    log.info("Index written to %s (%d items)", index_path, len(document.items))


def build_index_file(settings: Settings, embedder: EmbeddingCapability) -> IndexDocument:
    """Build the index and replace the file only once every item succeeded."""
    document = EmbeddingIndexBuilder.from_settings(settings, embedder).build()
    write_index(document, settings.index_path)
    return document
