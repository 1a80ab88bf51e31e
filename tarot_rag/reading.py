"""Reading orchestration: validate, retrieve related knowledge, assemble, generate."""

from __future__ import annotations

import logging
from typing import List, Optional

from .config import Settings
from .context import ContextAssembler, ValidatedRequest, reversal_marker
from .llm import GenerationCapability
from .manifests import ManifestResolver
from .models import DebugInfo, ReadingRequest, ReadingResponse, RetrievedChunk, ScoredItem
from .prompts import build_retrieval_query
from .retriever import SimilaritySearchEngine

log = logging.getLogger("tarot_rag.reading")


class ReadingService:
    def __init__(
        self,
        settings: Settings,
        resolver: ManifestResolver,
        assembler: ContextAssembler,
        generator: GenerationCapability,
        search: Optional[SimilaritySearchEngine] = None,
    ):
        self.settings = settings
        self.resolver = resolver
        self.assembler = assembler
        self.generator = generator
        self.search = search

    def retrieval_query(self, req: ValidatedRequest) -> str:
        lines = []
        for card in req.cards:
            name = self.resolver.canonical_name_for(card.card_id) or f"card {card.card_id}"
            lines.append(f"{name} ({reversal_marker(card.is_reversed)})")
        return build_retrieval_query(req.question_text, req.spread_key, lines, req.labels or None)

    def generate(self, request: ReadingRequest) -> ReadingResponse:
        log.info("Reading request: spread=%s cards=%d", request.spread_key, len(request.drawn_cards))

        validated = self.assembler.validate(
            request.spread_key,
            request.question_text,
            request.drawn_cards,
            request.position_labels,
        )

        query: Optional[str] = None
        retrieved: List[ScoredItem] = []
        if self.search is not None and self.settings.rag_enabled:
            query = self.retrieval_query(validated)
            retrieved = self.search.retrieve(query, self.settings.rag_top_k)
            log.info("Retrieved %d chunks for spread=%s", len(retrieved), validated.spread_key)

        context = self.assembler.render(validated, retrieved)
        reading_text = self.generator.generate(self.settings.chat_model, context.system_text, context.context_text)

        return ReadingResponse(
            reading_text=reading_text,
            debug_info=DebugInfo(
                retrieval_query=query,
                retrieved_chunks=[RetrievedChunk(path=i.path, similarity_score=i.similarity_score) for i in retrieved],
            ),
        )
