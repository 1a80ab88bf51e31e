"""Offline commands.

Usage:
    tarot-rag build-manifests
    tarot-rag build-index
    tarot-rag retrieve "one of sparks" [--k 8]
    tarot-rag serve [--host 127.0.0.1] [--port 3333]
"""

from __future__ import annotations

import argparse
import sys
from typing import List, Optional

from .config import Settings, configure_logging
from .errors import TarotRagError
from .index_builder import build_index_file
from .llm import OpenAICapability
from .manifests import build_manifest_files
from .retriever import DEFAULT_TOP_K, SimilaritySearchEngine, format_preview


def _build_manifests(args, settings: Settings) -> int:
    cards, spreads = build_manifest_files(settings)
    print(f"Cards mapped: {len(cards['cardsById'])}")
    print(f"Spreads mapped: {len(spreads)}")
    return 0


def _build_index(args, settings: Settings) -> int:
    document = build_index_file(settings, OpenAICapability(settings))
    print(f"RAG index written to: {settings.index_path}")
    print(f"Items indexed: {len(document.items)}")
    return 0


def _retrieve(args, settings: Settings) -> int:
    query = " ".join(args.query).strip()
    if not query:
        print('Usage: tarot-rag retrieve "one of sparks" [--k 8]', file=sys.stderr)
        return 1
    engine = SimilaritySearchEngine.from_settings(settings, OpenAICapability(settings))
    results = engine.retrieve(query, args.k)
    stats = engine.stats()

    print(f"\nIndex: {stats['itemCount']} items, model {stats['embeddingModel']}, built {stats['createdAt']}")
    print(f"Query: {query}")
    print(f"Top matches: {len(results)}\n")
    for rank, item in enumerate(results, start=1):
        print(f"{rank}) score={item.similarity_score:.4f} | {item.path}\n   {format_preview(item.text)}\n")
    return 0


def _serve(args, settings: Settings) -> int:
    import uvicorn

    uvicorn.run("tarot_rag.main:app", host=args.host, port=args.port)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="tarot-rag", description="Tarot reading knowledge tools")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("build-manifests", help="Parse card headers and write card/spread manifests").set_defaults(
        func=_build_manifests
    )
    sub.add_parser("build-index", help="Embed every knowledge file and write the index").set_defaults(
        func=_build_index
    )

    p = sub.add_parser("retrieve", help="Show the top-K knowledge files for a query")
    p.add_argument("query", nargs="+")
    p.add_argument("--k", type=int, default=DEFAULT_TOP_K)
    p.set_defaults(func=_retrieve)

    p = sub.add_parser("serve", help="Run the HTTP API")
    p.add_argument("--host", default="127.0.0.1")
    p.add_argument("--port", type=int, default=3333)
    p.set_defaults(func=_serve)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        settings = Settings.from_env()
        configure_logging(settings.log_level)
        return args.func(args, settings)
    except TarotRagError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
