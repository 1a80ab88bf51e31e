"""Deterministic assembly of the reading context.

The context document is laid out in a fixed order the generation prompt
relies on:

1. spread header and spread rules
2. supporting references (manifest files, then retrieved chunks)
3. the question
4. position blocks, in position order
5. card blocks, in draw order
"""

from __future__ import annotations

from typing import Any, List, Mapping, Optional, Sequence, Union

from pydantic import BaseModel, ValidationError as SchemaError

from .corpus import KnowledgeCorpusReader
from .errors import ValidationError
from .manifests import ManifestResolver, position_path
from .models import CardRecord, DrawnCard, ReadingContext, ScoredItem, SpreadDefinition
from .prompts import build_system_instruction_text, horoscope_position_text


class ValidatedRequest(BaseModel):
    spread_key: str
    spread: SpreadDefinition
    question_text: str
    cards: List[DrawnCard]
    records: List[CardRecord]
    horoscope: bool
    labels: List[str]


def reversal_marker(is_reversed: bool) -> str:
    return "REVERSED: yes" if is_reversed else "REVERSED: no"


def _coerce_cards(drawn_cards: Any) -> List[DrawnCard]:
    if not isinstance(drawn_cards, (list, tuple)) or not drawn_cards:
        raise ValidationError("drawnCards must be a non-empty array.")
    out = []
    for i, card in enumerate(drawn_cards, start=1):
        if isinstance(card, DrawnCard):
            out.append(card)
            continue
        try:
            out.append(DrawnCard.model_validate(card))
        except SchemaError as e:
            raise ValidationError(f"drawnCards[{i}] is malformed: {e}") from e
    return out


class ContextAssembler:
    def __init__(self, resolver: ManifestResolver, corpus: KnowledgeCorpusReader):
        self.resolver = resolver
        self.corpus = corpus

    def _text(self, relative_path: str) -> str:
        return self.corpus.read(relative_path).strip()

    def validate(
        self,
        spread_key: str,
        question_text: str,
        drawn_cards: Sequence[Union[DrawnCard, Mapping[str, Any]]],
        position_labels: Optional[Sequence[str]] = None,
    ) -> ValidatedRequest:
        """Fail fast, in a fixed order, on anything that cannot be assembled."""
        if not isinstance(spread_key, str) or not spread_key.strip():
            raise ValidationError("spreadKey must be a non-empty string.")
        spread_key = spread_key.strip()
        spread = self.resolver.resolve_spread(spread_key)

        if not isinstance(question_text, str) or not question_text.strip():
            raise ValidationError("questionText must be a non-empty string.")

        cards = _coerce_cards(drawn_cards)

        horoscope = self.resolver.is_horoscope(spread_key)
        expected = self.resolver.required_card_count(spread, horoscope)
        if len(cards) != expected:
            raise ValidationError(f'Spread "{spread_key}" expects {expected} cards, but got {len(cards)}.')

        labels: List[str] = []
        if horoscope:
            if position_labels is None:
                raise ValidationError(f'Spread "{spread_key}" requires {expected} positionLabels.')
            if not isinstance(position_labels, (list, tuple)) or not all(
                isinstance(label, str) for label in position_labels
            ):
                raise ValidationError("positionLabels must be an array of strings.")
            labels = [label.strip() for label in position_labels]
            if len(labels) != expected:
                raise ValidationError(
                    f'Spread "{spread_key}" expects {expected} positionLabels, but got {len(labels)}.'
                )
            empty = [i for i, label in enumerate(labels, start=1) if not label]
            if empty:
                raise ValidationError(f"positionLabels must be non-empty (empty at positions {empty}).")

        records = [self.resolver.resolve_card(card.card_id) for card in cards]
        return ValidatedRequest(
            spread_key=spread_key,
            spread=spread,
            question_text=question_text.strip(),
            cards=cards,
            records=records,
            horoscope=horoscope,
            labels=labels,
        )

    def assemble(
        self,
        spread_key: str,
        question_text: str,
        drawn_cards: Sequence[Union[DrawnCard, Mapping[str, Any]]],
        position_labels: Optional[Sequence[str]] = None,
        retrieved_chunks: Optional[Sequence[ScoredItem]] = None,
    ) -> ReadingContext:
        return self.render(self.validate(spread_key, question_text, drawn_cards, position_labels), retrieved_chunks)

    def render(self, req: ValidatedRequest, retrieved_chunks: Optional[Sequence[ScoredItem]] = None) -> ReadingContext:
        spread = req.spread

        # 1) spread
        used_paths = set()
        spread_rules = ""
        if spread.spread_path:
            spread_rules = self._text(spread.spread_path)
            used_paths.add(spread.spread_path)

        # 2) supporting references
        reference_blocks = []
        for path in spread.supporting_paths:
            reference_blocks.append((path, None, self._text(path)))
            used_paths.add(path)

        # 3) positions
        position_blocks = []
        if req.horoscope:
            for index, label in enumerate(req.labels, start=1):
                position_blocks.append(f"--- POSITION {index}: {label} ---\n{horoscope_position_text(label)}")
        else:
            for index, key in enumerate(spread.positions, start=1):
                path = position_path(key)
                position_blocks.append(f"--- POSITION {index}: {key} ---\n{self._text(path)}")
                used_paths.add(path)

        # 4) cards
        card_blocks = []
        for index, (drawn, record) in enumerate(zip(req.cards, req.records), start=1):
            lines = [
                f"--- CARD {index}: id={drawn.card_id} | {reversal_marker(drawn.is_reversed)} ---",
                self._text(record.card_path),
            ]
            used_paths.add(record.card_path)
            if record.suit_path:
                lines.append(f"\n--- SUIT ARCHETYPE ---\n{self._text(record.suit_path)}")
                used_paths.add(record.suit_path)
            if record.pip_path:
                lines.append(f"\n--- PIP ARCHETYPE ---\n{self._text(record.pip_path)}")
                used_paths.add(record.pip_path)
            card_blocks.append("\n".join(lines))

        for chunk in retrieved_chunks or []:
            if chunk.path in used_paths:
                continue
            used_paths.add(chunk.path)
            reference_blocks.append((chunk.path, chunk.similarity_score, chunk.text.strip()))

        parts = ["=== SPREAD ===", f"SPREAD KEY: {req.spread_key}"]
        if spread_rules:
            parts.append(spread_rules)
        if reference_blocks:
            parts.append("\n=== SUPPORTING REFERENCES ===")
            rendered = []
            for index, (path, score, text) in enumerate(reference_blocks, start=1):
                suffix = f" (similarity {score:.4f})" if score is not None else ""
                rendered.append(f"--- REFERENCE {index}: {path}{suffix} ---\n{text}")
            parts.append("\n\n".join(rendered))
        parts += [
            "\n=== QUESTION ===",
            req.question_text,
            "\n=== POSITIONS ===",
            "\n\n".join(position_blocks),
            "\n=== CARDS ===",
            "\n\n".join(card_blocks),
        ]

        return ReadingContext(system_text=build_system_instruction_text(), context_text="\n".join(parts))
