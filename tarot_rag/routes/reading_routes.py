"""FastAPI routes for readings and knowledge retrieval."""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException

from ..config import Settings
from ..context import ContextAssembler
from ..corpus import KnowledgeCorpusReader
from ..errors import (
    ConfigurationError,
    DataIntegrityError,
    TarotRagError,
    UpstreamServiceError,
    ValidationError,
)
from ..llm import OpenAICapability
from ..manifests import HOROSCOPE_CARD_COUNT, ManifestResolver
from ..models import ReadingRequest, ReadingResponse, RetrieveRequest
from ..reading import ReadingService
from ..retriever import SimilaritySearchEngine, format_preview

log = logging.getLogger("tarot_rag.routes")
router = APIRouter(tags=["reading"])

_STATUS = {
    ValidationError: (400, "validation_error"),
    ConfigurationError: (500, "configuration_error"),
    DataIntegrityError: (500, "data_integrity_error"),
    UpstreamServiceError: (502, "upstream_service_error"),
}


def http_error(e: TarotRagError) -> HTTPException:
    status, kind = _STATUS.get(type(e), (500, "internal_error"))
    if status >= 500:
        log.error("%s: %s", kind, e)
    return HTTPException(status_code=status, detail={"type": kind, "message": str(e)})


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_env()


@lru_cache(maxsize=1)
def get_capability() -> OpenAICapability:
    return OpenAICapability(get_settings())


@lru_cache(maxsize=1)
def get_search_engine() -> SimilaritySearchEngine:
    return SimilaritySearchEngine.from_settings(get_settings(), get_capability())


@lru_cache(maxsize=1)
def get_resolver() -> ManifestResolver:
    return ManifestResolver.from_settings(get_settings())


def get_reading_service() -> ReadingService:
    settings = get_settings()
    try:
        resolver = get_resolver()
    except TarotRagError as e:
        raise http_error(e) from e
    corpus = KnowledgeCorpusReader(settings.knowledge_root, settings.knowledge_extensions())
    return ReadingService(
        settings=settings,
        resolver=resolver,
        assembler=ContextAssembler(resolver, corpus),
        generator=get_capability(),
        search=get_search_engine() if settings.rag_enabled else None,
    )


@router.get("/spreads")
def list_spreads(service: ReadingService = Depends(get_reading_service)) -> Dict[str, Any]:
    resolver = service.resolver
    out = []
    for key in resolver.spread_keys():
        spread = resolver.resolve_spread(key)
        if resolver.is_horoscope(key):
            out.append({"key": key, "cardCount": HOROSCOPE_CARD_COUNT, "positions": []})
        elif spread.positions:
            out.append({"key": key, "cardCount": len(spread.positions), "positions": spread.positions})
    return {"spreads": out}


@router.post("/reading", response_model=ReadingResponse)
def create_reading(req: ReadingRequest, service: ReadingService = Depends(get_reading_service)) -> ReadingResponse:
    try:
        return service.generate(req)
    except TarotRagError as e:
        raise http_error(e) from e


@router.post("/retrieve")
def retrieve(req: RetrieveRequest, service: ReadingService = Depends(get_reading_service)) -> Dict[str, Any]:
    if service.search is None:
        raise HTTPException(status_code=503, detail={"type": "retrieval_disabled", "message": "RAG_ENABLED is off"})
    try:
        k = req.k if req.k is not None else service.settings.rag_top_k
        items = service.search.retrieve(req.query, k)
    except TarotRagError as e:
        raise http_error(e) from e
    return {
        "items": [
            {"id": i.id, "path": i.path, "similarityScore": i.similarity_score, "preview": format_preview(i.text)}
            for i in items
        ]
    }
