"""Runtime settings.

Values come from the environment (optionally seeded from a `.env` file).
Relative paths resolve against TAROT_RAG_HOME, which defaults to the
current working directory.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Mapping, Optional

from dotenv import load_dotenv
from pydantic import BaseModel

from .errors import ConfigurationError

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


class Settings(BaseModel):
    home: Path
    knowledge_root: Path
    data_dir: Path
    index_path: Path
    card_manifest_path: Path
    spread_manifest_path: Path
    embedding_model: str = "nomic-embed-text"
    chat_model: str = "qwen2.5:7b-instruct"
    llm_base_url: str = "http://localhost:11434/v1"
    api_key: str = "ollama"
    rag_top_k: int = 8
    rag_enabled: bool = True
    include_markdown: bool = True
    temperature: float = 0.85
    top_p: float = 0.9
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None, dotenv_path: Optional[str] = None) -> "Settings":
        if env is None:
            load_dotenv(dotenv_path)
            env = os.environ

        home = Path(env.get("TAROT_RAG_HOME") or os.getcwd()).resolve()

        def _path(value: str) -> Path:
            p = Path(value)
            return p if p.is_absolute() else home / p

        data_dir = _path(env.get("DATA_DIR", "data"))

        def _data_path(name: str, default_file: str) -> Path:
            raw = env.get(name)
            return _path(raw) if raw else data_dir / default_file

        return cls(
            home=home,
            knowledge_root=_path(env.get("KNOWLEDGE_ROOT", "knowledge")),
            data_dir=data_dir,
            index_path=_data_path("INDEX_PATH", "index.json"),
            card_manifest_path=_data_path("CARD_MANIFEST_PATH", "tarotManifest.json"),
            spread_manifest_path=_data_path("SPREAD_MANIFEST_PATH", "spreadManifest.json"),
            embedding_model=env.get("EMBEDDING_MODEL", "nomic-embed-text").strip(),
            chat_model=env.get("CHAT_MODEL", "qwen2.5:7b-instruct").strip(),
            llm_base_url=env.get("LLM_BASE_URL", "http://localhost:11434/v1").strip(),
            api_key=env.get("OPENAI_API_KEY") or "ollama",
            rag_top_k=_int(env, "RAG_TOP_K", 8),
            rag_enabled=_bool(env, "RAG_ENABLED", True),
            include_markdown=_bool(env, "INCLUDE_MARKDOWN", True),
            temperature=_float(env, "GENERATION_TEMPERATURE", 0.85),
            top_p=_float(env, "GENERATION_TOP_P", 0.9),
            log_level=env.get("LOG_LEVEL", "INFO").strip().upper(),
        )

    def knowledge_extensions(self) -> tuple:
        return (".txt", ".md") if self.include_markdown else (".txt",)


def _int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from e
    if value <= 0:
        raise ConfigurationError(f"{name} must be positive, got {value}")
    return value


def _float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from e


def _bool(env: Mapping[str, str], name: str, default: bool) -> bool:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    s = raw.strip().lower()
    if s in _TRUE:
        return True
    if s in _FALSE:
        return False
    raise ConfigurationError(f"{name} must be a boolean (true/false), got {raw!r}")


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)
