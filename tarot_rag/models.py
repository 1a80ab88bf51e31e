from __future__ import annotations

from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """JSON on disk and on the wire is camelCase; Python attributes are not."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# -------------------------------------------------------------------
# Index
# -------------------------------------------------------------------

class KnowledgeRecord(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: str
    path: str
    text: str
    embedding: List[float]


class IndexDocument(CamelModel):
    version: int = 1
    created_at: str
    embedding_model: str
    item_count: int = 0
    items: List[KnowledgeRecord] = Field(default_factory=list)


class ScoredItem(CamelModel):
    id: str
    path: str
    text: str
    similarity_score: float


# -------------------------------------------------------------------
# Manifests
# -------------------------------------------------------------------

class CardRecord(CamelModel):
    card_path: str
    suit_path: Optional[str] = None
    pip_path: Optional[str] = None

    @property
    def is_pip(self) -> bool:
        return bool(self.suit_path and self.pip_path)


class SpreadDefinition(CamelModel):
    spread_path: Optional[str] = None
    positions: List[str] = Field(default_factory=list)
    supporting_paths: List[str] = Field(default_factory=list)


# -------------------------------------------------------------------
# Reading request / response
# -------------------------------------------------------------------

class DrawnCard(CamelModel):
    card_id: str
    is_reversed: bool

    @field_validator("card_id", mode="before")
    @classmethod
    def _card_id_as_string(cls, v: Union[int, str]) -> str:
        if isinstance(v, bool):
            raise ValueError("cardId must be a string or integer")
        if isinstance(v, int):
            return str(v)
        return v


class ReadingRequest(CamelModel):
    spread_key: str = ""
    question_text: str = ""
    drawn_cards: List[DrawnCard] = Field(default_factory=list)
    position_labels: Optional[List[str]] = None


class RetrievedChunk(CamelModel):
    path: str
    similarity_score: float


class DebugInfo(CamelModel):
    retrieval_query: Optional[str] = None
    retrieved_chunks: List[RetrievedChunk] = Field(default_factory=list)


class ReadingResponse(CamelModel):
    reading_text: str
    debug_info: DebugInfo


class ReadingContext(BaseModel):
    system_text: str
    context_text: str


class RetrieveRequest(CamelModel):
    query: str
    k: Optional[int] = None
