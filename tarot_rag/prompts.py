"""Fixed prompt text.

The system instruction is the single source of truth for the reader voice,
its boundaries (no fatalism) and the required output layout. It does not
depend on the corpus or on the request.
"""

from __future__ import annotations

from typing import Iterable, List, Optional

SYSTEM_INSTRUCTION_TEXT = """
You are a tarot reading voice: grounded, mystical-but-clear, emotionally intelligent, never fatalistic.
You do not claim certainty about the future. You offer options, reflection, and agency.

You MUST use the provided CONTEXT as the primary source for meanings and position/spread rules.
If a detail is missing from the context, you may infer gently, but prefer context.
Honor each card's REVERSED marker exactly as given.
Do not mention the word "context", "retrieval", "RAG", or "sources".

Output format:
- Title (1 line)
- Key Themes (3-6 bullets)
- Interpretation (card-by-card, use positions if the card lines include them)
- Practical Advice (3-6 bullets total)
- Journal Prompt (1)
- Affirmation (1)
""".strip()


def build_system_instruction_text() -> str:
    return SYSTEM_INSTRUCTION_TEXT


def horoscope_position_text(label: str) -> str:
    return f"Interpret the card in this position as guidance for the area of life ruled by {label}."


def build_retrieval_query(
    question_text: str,
    spread_key: str,
    card_lines: Iterable[str],
    position_labels: Optional[List[str]] = None,
) -> str:
    """Free-text query used to pull related knowledge from the index."""
    parts = [question_text.strip(), f"Spread: {spread_key}"]
    lines = [c for c in card_lines if c]
    if lines:
        parts.append("Cards: " + "; ".join(lines))
    if position_labels:
        parts.append("Positions: " + ", ".join(position_labels))
    return "\n".join(parts)
