"""Shared fixtures: a small knowledge corpus and fake model capabilities."""

import json
import string
from pathlib import Path

import pytest

from tarot_rag.config import Settings
from tarot_rag.context import ContextAssembler
from tarot_rag.corpus import KnowledgeCorpusReader
from tarot_rag.errors import UpstreamServiceError
from tarot_rag.manifests import ManifestResolver, build_manifest_files


CORPUS = {
    "cards/00-seeker.txt": (
        "CARD ID: 0 CANONICAL TSA NAME: The Seeker RWS EQUIVALENT: The Fool ELEMENT: Air\n\n"
        "The Seeker steps into the unknown with an open heart."
    ),
    "cards/01-maker.txt": (
        "CARD ID: 1 CANONICAL TSA NAME: The Maker RWS EQUIVALENT: The Magician\n\n"
        "The Maker turns will into form."
    ),
    "cards/23-three-of-cups.txt": (
        "CARD ID: 23 CANONICAL TSA NAME: Three of Cups RWS EQUIVALENT: Three of Cups SUIT: Cups PIP: Three\n\n"
        "Friends gather and celebrate together."
    ),
    "cards/readme.txt": "Notes about the deck; not a card.",
    "minorArcana/suits/cups.txt": "CUPS: water, feeling, relationship.",
    "minorArcana/pips/three.txt": "THREE: growth through collaboration.",
    "positions/past.txt": "PAST: what shaped the situation.",
    "positions/present.txt": "PRESENT: what is active now.",
    "positions/future_directional.txt": "FUTURE: where things lean if nothing changes.",
    "spreads/ppf.txt": "PPF: read left to right as a timeline.",
    "spreads/horoscope.txt": "HOROSCOPE: one card for each house of the year.",
    "reference/zodiac.txt": "ZODIAC: twelve signs, twelve areas of life.",
}


class FakeEmbedder:
    """Letter-frequency vectors; deterministic and dependency free."""

    def __init__(self):
        self.calls = []

    def embed(self, model, text):
        self.calls.append((model, text))
        lowered = text.lower()
        return [float(lowered.count(ch)) for ch in string.ascii_lowercase]


class FailingEmbedder:
    def embed(self, model, text):
        raise UpstreamServiceError(f"Embedding request failed (model={model}): connection refused")


class FakeGenerator:
    def __init__(self, reply="Title: A Gentle Turn"):
        self.reply = reply
        self.calls = []

    def generate(self, model, system_text, prompt_text):
        self.calls.append((model, system_text, prompt_text))
        return self.reply


def write_corpus(root: Path, files: dict) -> None:
    for rel, text in files.items():
        p = root / rel
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_text(text, encoding="utf-8")


def write_index(path: Path, items, model="fake-embed", key="embeddingModel"):
    path.parent.mkdir(parents=True, exist_ok=True)
    doc = {"version": 1, "createdAt": "2026-01-01T00:00:00+00:00", key: model, "items": items}
    path.write_text(json.dumps(doc), encoding="utf-8")


@pytest.fixture
def settings(tmp_path):
    write_corpus(tmp_path / "knowledge", CORPUS)
    return Settings.from_env(env={"TAROT_RAG_HOME": str(tmp_path), "EMBEDDING_MODEL": "fake-embed"})


@pytest.fixture
def corpus(settings):
    return KnowledgeCorpusReader(settings.knowledge_root, settings.knowledge_extensions())


@pytest.fixture
def resolver(settings):
    build_manifest_files(settings)
    return ManifestResolver.from_settings(settings)


@pytest.fixture
def assembler(resolver, corpus):
    return ContextAssembler(resolver, corpus)
