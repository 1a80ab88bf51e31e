"""Card and spread manifests.

The offline half parses card file headers and writes two JSON manifests; the
online half (`ManifestResolver`) turns card ids and spread keys back into
corpus paths.

Card headers are frequently a single long line, e.g.::

    CARD ID: 23 CANONICAL TSA NAME: Three of Cups RWS EQUIVALENT: ... SUIT: Cups PIP: Three

so each field is pulled out by its own pattern, independent of order.
"""

from __future__ import annotations

import json
import logging
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ValidationError as SchemaError

from .config import Settings
from .corpus import KnowledgeCorpusReader
from .errors import ConfigurationError, DataIntegrityError, ValidationError
from .models import CardRecord, SpreadDefinition
from .utils.atomic import write_json_atomic

log = logging.getLogger("tarot_rag.manifests")

MANIFEST_VERSION = 1
HOROSCOPE_SPREAD_KEY = "horoscope"
HOROSCOPE_CARD_COUNT = 12
BUILD_HINT = "Run: tarot-rag build-manifests"

_NEXT_LABEL = r"(?=\s+CARD ID:|\s+RWS\s+EQUIVALENT|\s+ELEMENT:|\s+SUIT:|\s+PIP:|\s+NAMING RULE:|\s*\n|\s*$)"

HEADER_PATTERNS: Dict[str, re.Pattern] = {
    "card_id": re.compile(r"CARD ID:\s*([0-9]+)", re.I),
    "canonical_name": re.compile(r"CANONICAL[^:\n]*NAME[^:\n]*:\s*(.+?)" + _NEXT_LABEL, re.I),
    "suit": re.compile(r"\bSUIT:\s*([A-Za-z]+)", re.I),
    "pip": re.compile(r"\bPIP:\s*([A-Za-z0-9]+)", re.I),
}

# spread key -> (rules file, ordered position keys, supporting files)
SPREAD_TABLE: Dict[str, Tuple[str, List[str], List[str]]] = {
    "ppf": ("spreads/ppf.txt", ["past", "present", "future_directional"], []),
    "pphao": ("spreads/pphao.txt", ["past", "present", "hidden_issues", "advice", "outcome"], []),
    "kdk": ("spreads/kdk.txt", ["what_i_know", "what_i_dont_know", "what_i_need_to_know"], []),
    "gsbbl": ("spreads/gsbbl.txt", ["goal", "status", "block", "bridge", "lesson"], []),
    "fml": ("spreads/fml.txt", ["focus", "moving_forward", "letting_go"], []),
    "tot": (
        "spreads/this-or-that.txt",
        ["focus", "option_a_pro", "option_a_con", "option_b_pro", "option_b_con"],
        [],
    ),
    HOROSCOPE_SPREAD_KEY: (
        "spreads/horoscope.txt",
        [f"sign_{i}" for i in range(1, HOROSCOPE_CARD_COUNT + 1)],
        ["reference/zodiac.txt"],
    ),
}


def normalize_key(text: Optional[str]) -> str:
    return (text or "").strip().lower()


class CardHeader(BaseModel):
    card_id: Optional[str] = None
    canonical_name: Optional[str] = None
    suit: Optional[str] = None
    pip: Optional[str] = None


def extract_field(text: str, field: str) -> Optional[str]:
    match = HEADER_PATTERNS[field].search(text or "")
    if not match:
        return None
    value = match.group(1).strip()
    return value or None


def parse_card_header(text: str) -> CardHeader:
    return CardHeader(**{field: extract_field(text, field) for field in HEADER_PATTERNS})


def position_path(position_key: str) -> str:
    return f"positions/{position_key}.txt"


# -------------------------------------------------------------------
# BUILD
# -------------------------------------------------------------------

def build_card_manifest(corpus: KnowledgeCorpusReader) -> Dict[str, Any]:
    manifest: Dict[str, Any] = {
        "version": MANIFEST_VERSION,
        "generatedAt": datetime.now(timezone.utc).isoformat(),
        "cardsById": {},
        "cardsByCanonicalName": {},
    }
    majors = pips = skipped = 0

    for card_path in corpus.list_files("cards"):
        header = parse_card_header(corpus.read(card_path))
        if not header.card_id:
            skipped += 1
            log.info("Skipping %s: no CARD ID in header", card_path)
            continue
        if header.card_id in manifest["cardsById"]:
            other = manifest["cardsById"][header.card_id]["cardPath"]
            raise DataIntegrityError(f"Duplicate CARD ID {header.card_id} in {card_path} and {other}")

        record = CardRecord(card_path=card_path)
        if header.suit and header.pip:
            suit_path = f"minorArcana/suits/{normalize_key(header.suit)}.txt"
            pip_path = f"minorArcana/pips/{normalize_key(header.pip)}.txt"
            label = header.canonical_name or "unknown"
            if not corpus.has_file(suit_path):
                raise DataIntegrityError(f"Missing suit file for card {header.card_id} ({label}): {suit_path}")
            if not corpus.has_file(pip_path):
                raise DataIntegrityError(f"Missing pip file for card {header.card_id} ({label}): {pip_path}")
            record = CardRecord(card_path=card_path, suit_path=suit_path, pip_path=pip_path)
            pips += 1
        else:
            majors += 1

        manifest["cardsById"][header.card_id] = record.model_dump(by_alias=True, exclude_none=True)
        if header.canonical_name:
            manifest["cardsByCanonicalName"][normalize_key(header.canonical_name)] = header.card_id

    log.info(
        "Cards mapped: %d (majors=%d, pips=%d, skipped without CARD ID=%d)",
        len(manifest["cardsById"]), majors, pips, skipped,
    )
    return manifest


def build_spread_manifest(corpus: KnowledgeCorpusReader) -> Dict[str, Any]:
    manifest: Dict[str, Any] = {}
    for key, (spread_path, positions, supporting) in SPREAD_TABLE.items():
        spread = SpreadDefinition(positions=list(positions))
        if corpus.has_file(spread_path):
            spread.spread_path = spread_path
        else:
            log.warning("Spread %s has no rules file (%s); writing it without spreadPath", key, spread_path)

        for p in supporting:
            if corpus.has_file(p):
                spread.supporting_paths.append(p)
            else:
                log.info("Spread %s: supporting file %s not found, omitted", key, p)

        if key != HOROSCOPE_SPREAD_KEY:
            for pos in positions:
                if not corpus.has_file(position_path(pos)):
                    log.warning("Spread %s: position file %s is missing", key, position_path(pos))

        manifest[key] = spread.model_dump(by_alias=True, exclude_none=True)
        if not spread.supporting_paths:
            manifest[key].pop("supportingPaths", None)

    log.info("Spreads mapped: %d", len(manifest))
    return manifest


def build_manifest_files(settings: Settings) -> Tuple[Dict[str, Any], Dict[str, Any]]:
    corpus = KnowledgeCorpusReader(settings.knowledge_root, (".txt",))
    if not corpus.exists():
        raise ConfigurationError(f"Missing knowledge folder: {settings.knowledge_root}")

    cards = build_card_manifest(corpus)
    spreads = build_spread_manifest(corpus)

    write_json_atomic(settings.card_manifest_path, cards)
    write_json_atomic(settings.spread_manifest_path, spreads)
    log.info("Manifests written: %s, %s", settings.card_manifest_path, settings.spread_manifest_path)
    return cards, spreads


# -------------------------------------------------------------------
# RESOLVE
# -------------------------------------------------------------------

def _read_json(path: Path) -> Dict[str, Any]:
    path = Path(path)
    if not path.is_file():
        raise ConfigurationError(f"Missing manifest: {path}. {BUILD_HINT}")
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigurationError(f"Invalid JSON in manifest {path}: {e}. {BUILD_HINT}") from e
    if not isinstance(data, dict):
        raise ConfigurationError(f"Manifest {path} must be a JSON object. {BUILD_HINT}")
    return data


class ManifestResolver:
    def __init__(self, card_manifest: Dict[str, Any], spread_manifest: Dict[str, Any]):
        cards_by_id = card_manifest.get("cardsById")
        if not isinstance(cards_by_id, dict):
            raise ConfigurationError(f"Card manifest has no cardsById mapping. {BUILD_HINT}")

        try:
            self.cards_by_id: Dict[str, CardRecord] = {
                str(cid): CardRecord.model_validate(rec) for cid, rec in cards_by_id.items()
            }
            self.spreads: Dict[str, SpreadDefinition] = {
                key: SpreadDefinition.model_validate(entry) for key, entry in spread_manifest.items()
            }
        except SchemaError as e:
            raise ConfigurationError(f"Malformed manifest entry: {e}. {BUILD_HINT}") from e

        names = card_manifest.get("cardsByCanonicalName") or {}
        self.cards_by_canonical_name: Dict[str, str] = {normalize_key(k): str(v) for k, v in names.items()}
        self._names_by_id = {cid: name for name, cid in self.cards_by_canonical_name.items()}

    @classmethod
    def from_settings(cls, settings: Settings) -> "ManifestResolver":
        return cls(_read_json(settings.card_manifest_path), _read_json(settings.spread_manifest_path))

    def resolve_card(self, card_id) -> CardRecord:
        record = self.cards_by_id.get(str(card_id))
        if record is None:
            raise ValidationError(f"Card id {card_id} not found in card manifest")
        return record

    def resolve_spread(self, spread_key: str) -> SpreadDefinition:
        spread = self.spreads.get(spread_key)
        if spread is None:
            raise ValidationError(f'Unknown spreadKey: "{spread_key}" (not found in spread manifest)')
        return spread

    def required_card_count(self, spread: SpreadDefinition, is_horoscope: bool) -> int:
        if is_horoscope:
            return HOROSCOPE_CARD_COUNT
        if not spread.positions:
            raise ConfigurationError(
                f"Spread {spread.spread_path or '(no rules file)'} declares no positions "
                f"and cannot be used for a reading. {BUILD_HINT}"
            )
        return len(spread.positions)

    def is_horoscope(self, spread_key: str) -> bool:
        return spread_key == HOROSCOPE_SPREAD_KEY

    def spread_keys(self) -> List[str]:
        return list(self.spreads)

    def card_id_for_name(self, name: str) -> Optional[str]:
        return self.cards_by_canonical_name.get(normalize_key(name))

    def canonical_name_for(self, card_id) -> Optional[str]:
        return self._names_by_id.get(str(card_id))
