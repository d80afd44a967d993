"""Per-command wiring: config → store → meter → embedder → services.

Each CLI command opens one request-scoped connection through
``open_services()`` and closes it when the command finishes.
"""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Annotated, Iterator

import typer

from lectern.config import LecternConfig, load_config
from lectern.db.connection import open_store
from lectern.db.repository import Repository
from lectern.errors import store_errors
from lectern.ingest.normalizer import Normalizer
from lectern.ingest.pipeline import Ingestor
from lectern.metering import UsageMeter
from lectern.notebooks import NotebookService
from lectern.rag.assembler import AssemblerConfig, NotebookQA
from lectern.rag.embedder import EmbeddingClient
from lectern.rag.insights import DocumentInsights
from lectern.rag.retriever import HybridRetriever, RetrieverConfig

DbOption = Annotated[
    Path | None,
    typer.Option("--db", help="Path to the Lectern database (default: storage.db_path)."),
]


@dataclass
class Services:
    config: LecternConfig
    conn: sqlite3.Connection
    vec_table: str
    repo: Repository
    meter: UsageMeter
    embedder: EmbeddingClient

    def ingestor(self) -> Ingestor:
        return Ingestor(self.repo, Normalizer(self.config.limits), self.embedder, self.vec_table)

    def retriever(self) -> HybridRetriever:
        retrieval = self.config.retrieval
        return HybridRetriever(
            self.repo,
            self.embedder,
            self.vec_table,
            RetrieverConfig(
                candidate_limit=retrieval.candidate_limit,
                rrf_k=retrieval.rrf_k,
                default_limit=retrieval.search_limit,
            ),
        )

    def notebooks(self) -> NotebookService:
        return NotebookService(self.repo)

    def qa(self) -> NotebookQA:
        generation = self.config.generation
        return NotebookQA(
            self.repo,
            self.embedder,
            self.meter,
            self.vec_table,
            AssemblerConfig(
                generation_model=generation.model,
                temperature=generation.temperature,
                max_tokens=generation.max_tokens,
                top_k=self.config.retrieval.notebook_top_k,
            ),
        )

    def insights(self) -> DocumentInsights:
        return DocumentInsights(self.meter, model=self.config.generation.model)


@contextmanager
def open_services(db: Path | None = None) -> Iterator[Services]:
    """Load configuration and open the store for one command.

    Raises:
        ConfigError: Invalid configuration or vector width mismatch.
        StoreFailure: The database could not be opened or migrated.
    """
    config = load_config()
    db_path = db if db is not None else Path(config.storage.db_path)
    with store_errors(f"open the database at '{db_path}'"):
        conn, vec_table = open_store(
            db_path, config.embedding.model, config.embedding.dimensions
        )
    try:
        repo = Repository(conn)
        meter = UsageMeter(repo, config.pricing)
        embedder = EmbeddingClient(meter, config.embedding.model, config.embedding.dimensions)
        yield Services(
            config=config,
            conn=conn,
            vec_table=vec_table,
            repo=repo,
            meter=meter,
            embedder=embedder,
        )
    finally:
        conn.close()
