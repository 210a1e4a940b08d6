"""Wiring shared by the CLI commands: config, index, provider and models.

Each ``make_*`` factory builds one collaborator from the loaded config;
commands call them through this module so tests can patch a single factory.
"""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console

from pagemind.cli.errors import err_config, err_no_api_key, err_no_provider_url
from pagemind.config import ConfigError, PagemindConfig, load_config, provider_token
from pagemind.coordinator import QueryCoordinator
from pagemind.db.connection import Database
from pagemind.db.repository import Repository
from pagemind.db.schema import initialize
from pagemind.ingest.chunker import PageChunker
from pagemind.ingest.embedder import Embedder, LiteLLMEmbedder
from pagemind.log import setup_logging
from pagemind.memory.extractor import FactExtractor, LLMFactExtractor
from pagemind.memory.facts import FactStore
from pagemind.memory.module import MemoryModule
from pagemind.memory.short_term import SessionRegistry
from pagemind.memory.worker import ExtractionQueue
from pagemind.rag.answer import LLMSynthesizer, Synthesizer
from pagemind.rag.llm_client import validate_api_key
from pagemind.rag.retriever import Retriever, RetrieverConfig
from pagemind.source.fetcher import RateLimitedFetcher
from pagemind.source.http import HttpContentProvider
from pagemind.source.provider import ContentProvider
from pagemind.sync.engine import SyncEngine
from pagemind.sync.state import SyncState, SyncStateStore

console = Console()

DEFAULT_DB = Path(".pagemind.db")


def load_cli_config() -> PagemindConfig:
    """Load config and set up logging; exit with an actionable message on error."""
    try:
        cfg = load_config()
    except ConfigError as exc:
        console.print(err_config(str(exc)))
        raise typer.Exit(1) from exc
    setup_logging(
        level=cfg.logging.level,
        log_to_file=cfg.logging.log_to_file,
        log_dir=cfg.logging.log_dir,
        file_rotation=cfg.logging.rotation,
        file_retention=cfg.logging.retention,
    )
    return cfg


def open_repository(db_path: Path) -> Repository:
    """Open (creating if needed) the index at *db_path*."""
    conn = Database(db_path).connect()
    initialize(conn)
    return Repository(conn)


def _require_key(model: str) -> None:
    try:
        validate_api_key(model)
    except EnvironmentError as exc:
        console.print(err_no_api_key(model))
        raise typer.Exit(1) from exc


# ------------------------------------------------------------------
# Factories
# ------------------------------------------------------------------


def make_embedder(cfg: PagemindConfig) -> Embedder:
    _require_key(cfg.embedding.model)
    return LiteLLMEmbedder(cfg.embedding.model, cfg.embedding.dimensions, cfg.embedding.timeout)


def make_provider(cfg: PagemindConfig) -> ContentProvider:
    if not cfg.provider.base_url:
        console.print(err_no_provider_url())
        raise typer.Exit(1)
    return HttpContentProvider(
        cfg.provider.base_url, token=provider_token(), timeout=cfg.fetcher.timeout
    )


def make_synthesizer(cfg: PagemindConfig) -> Synthesizer:
    _require_key(cfg.generation.model)
    return LLMSynthesizer(cfg.generation.model)


def make_extractor(cfg: PagemindConfig) -> FactExtractor:
    _require_key(cfg.generation.extraction_model)
    return LLMFactExtractor(cfg.generation.extraction_model)


def make_sync_engine(cfg: PagemindConfig, repo: Repository) -> SyncEngine:
    f = cfg.fetcher
    fetcher = RateLimitedFetcher(
        make_provider(cfg),
        rate=f.rate,
        burst=f.burst,
        max_concurrent=f.max_concurrent,
        max_attempts=f.max_attempts,
        base_delay=f.base_delay,
        max_delay=f.max_delay,
    )
    return SyncEngine(
        fetcher,
        SyncStateStore(repo.conn, lock=repo.lock),
        repo,
        make_embedder(cfg),
        PageChunker(cfg.chunker.max_tokens),
        SyncState(),
        full_reconcile_seconds=cfg.sync.full_reconcile_seconds,
    )


def make_coordinator(cfg: PagemindConfig, repo: Repository) -> QueryCoordinator:
    embedder = make_embedder(cfg)
    r = cfg.retrieval
    retriever = Retriever(
        repo,
        embedder,
        RetrieverConfig(
            mode=r.mode, top_k=r.top_k, rrf_k=r.rrf_k, min_similarity=r.min_similarity
        ),
    )
    facts = FactStore(repo, embedder, min_similarity=cfg.memory.min_fact_similarity)
    memory = MemoryModule(
        SessionRegistry(cfg.memory.short_term_turns),
        facts,
        ExtractionQueue(
            make_extractor(cfg),
            facts,
            workers=cfg.memory.extraction_workers,
            maxsize=cfg.memory.extraction_queue_size,
        ),
        fact_top_k=cfg.memory.fact_top_k,
    )
    return QueryCoordinator(
        retriever,
        memory,
        make_synthesizer(cfg),
        token_budget=r.token_budget,
        model=cfg.generation.model,
    )
