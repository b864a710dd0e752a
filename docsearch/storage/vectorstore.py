"""Vector index storage using PostgreSQL with pgvector."""

from __future__ import annotations

import logging
import re
from typing import Iterable, List, Sequence

import psycopg
from psycopg.rows import dict_row
from psycopg.types.json import Jsonb
from psycopg_pool import AsyncConnectionPool

from docsearch.domain.chunk import Chunk
from docsearch.domain.document import Document, DocumentTags
from docsearch.domain.results import IndexStats, ScoredChunk
from docsearch.errors import EmbeddingDimensionMismatchError, IndexWriteError, NotFoundError
from docsearch.storage.base import VectorIndex
from docsearch.storage.filters import SearchFilter
from docsearch.storage.similarity import Metric

logger = logging.getLogger(__name__)

_IDENTIFIER_RE = re.compile(r"^[a-z_][a-z0-9_]{0,40}$")

_OPERATORS = {
    Metric.COSINE: ("<=>", "vector_cosine_ops"),
    Metric.L2: ("<->", "vector_l2_ops"),
}


def _parse_vector_dim(type_str: str) -> int | None:
    """Parse pgvector type like 'vector(768)' to dimension."""
    match = re.match(r"vector\((\d+)\)", type_str)
    if not match:
        return None
    return int(match.group(1))


def _vector_literal(vector: Sequence[float]) -> str:
    return "[" + ",".join(str(float(x)) for x in vector) + "]"


def _parse_vector_literal(value: str | None) -> tuple[float, ...] | None:
    if value is None:
        return None
    body = value.strip().strip("[]")
    if not body:
        return ()
    return tuple(float(x) for x in body.split(","))


class PgVectorIndex(VectorIndex):
    """Vector index backed by two pgvector tables.

    ``{prefix}_documents`` holds one row per document; ``{prefix}_chunks``
    holds its chunks with ``ON DELETE CASCADE``. The ``seq`` column records
    insertion order and breaks score ties.
    """

    def __init__(
        self,
        database_url: str,
        dimension: int,
        metric: Metric | str = Metric.COSINE,
        table_prefix: str = "docsearch",
        min_size: int = 1,
        max_size: int = 10,
    ):
        """Initialize PgVectorIndex.

        Args:
            database_url: PostgreSQL connection URL
            dimension: Vector length of the embedding model
            metric: Default similarity metric, also used for the ANN index
            table_prefix: Prefix for the documents and chunks tables
            min_size: Minimum pool size
            max_size: Maximum pool size
        """
        super().__init__(dimension, metric)
        if not database_url:
            raise ValueError("database_url is required for the postgres backend")
        if not _IDENTIFIER_RE.match(table_prefix):
            raise ValueError(f"Invalid table prefix: {table_prefix!r}")
        self._database_url = database_url
        self._documents_table = f"{table_prefix}_documents"
        self._chunks_table = f"{table_prefix}_chunks"
        self._min_size = min_size
        self._max_size = max_size
        self._pool: AsyncConnectionPool | None = None

    @property
    def pool(self) -> AsyncConnectionPool:
        if self._pool is None:
            raise RuntimeError("PgVectorIndex not initialized")
        return self._pool

    async def initialize(self) -> None:
        """Open the connection pool and create tables if needed.

        Raises:
            EmbeddingDimensionMismatchError: If the existing vector column
                has a different dimension than the configured model
        """
        if self._pool is not None:
            return

        await self._open_pool()
        try:
            async with self._pool.connection() as conn:
                await self._create_tables(conn)
        except BaseException:
            await self._pool.close()
            self._pool = None
            raise

    async def _open_pool(self) -> AsyncConnectionPool:
        if self._pool is None:
            self._pool = AsyncConnectionPool(
                conninfo=self._database_url,
                min_size=self._min_size,
                max_size=self._max_size,
                open=False,
                kwargs={"autocommit": True, "row_factory": dict_row},
            )
            await self._pool.open()
        return self._pool

    async def _create_tables(self, conn: psycopg.AsyncConnection) -> None:
        await conn.execute("CREATE EXTENSION IF NOT EXISTS vector")

        cursor = await conn.execute(
            "SELECT to_regclass(%s) IS NOT NULL AS present", (self._chunks_table,)
        )
        row = await cursor.fetchone()
        if row["present"]:
            cursor = await conn.execute(
                """
                SELECT pg_catalog.format_type(atttypid, atttypmod) AS type
                FROM pg_attribute
                WHERE attrelid = %s::regclass AND attname = 'embedding'
                """,
                (self._chunks_table,),
            )
            result = await cursor.fetchone()
            if result:
                existing_dim = _parse_vector_dim(result["type"])
                if existing_dim is not None and existing_dim != self._dimension:
                    raise EmbeddingDimensionMismatchError(
                        self._dimension,
                        existing_dim,
                        message=(
                            f"Table {self._chunks_table} has dimension {existing_dim}, "
                            f"but the embedding model produces {self._dimension}; "
                            "run `docsearch clear --reset` to re-embed"
                        ),
                    )

        await conn.execute(f"""
            CREATE TABLE IF NOT EXISTS {self._documents_table} (
                id VARCHAR(64) PRIMARY KEY,
                path VARCHAR(2048) UNIQUE NOT NULL,
                title VARCHAR(512) NOT NULL,
                file_type VARCHAR(32) NOT NULL,
                file_size BIGINT NOT NULL DEFAULT 0,
                checksum VARCHAR(64) NOT NULL,
                signature VARCHAR(64) NOT NULL DEFAULT '',
                metadata JSONB NOT NULL DEFAULT '{{}}',
                tags JSONB NOT NULL DEFAULT '{{}}',
                created_at TIMESTAMPTZ DEFAULT NOW(),
                updated_at TIMESTAMPTZ DEFAULT NOW()
            )
        """)

        await conn.execute(f"""
            CREATE TABLE IF NOT EXISTS {self._chunks_table} (
                seq BIGSERIAL PRIMARY KEY,
                chunk_id VARCHAR(64) UNIQUE NOT NULL,
                doc_id VARCHAR(64) NOT NULL
                    REFERENCES {self._documents_table}(id) ON DELETE CASCADE,
                chunk_index INTEGER NOT NULL,
                content TEXT NOT NULL,
                token_count INTEGER NOT NULL DEFAULT 0,
                embedding vector({self._dimension}) NOT NULL,
                metadata JSONB NOT NULL DEFAULT '{{}}',
                UNIQUE (doc_id, chunk_index)
            )
        """)

        _, opclass = _OPERATORS[self._metric]
        # ivfflat supports up to 2000 dimensions; fall back to hnsw above that
        if self._dimension <= 2000:
            index_sql = f"""
                CREATE INDEX IF NOT EXISTS {self._chunks_table}_embedding_idx
                ON {self._chunks_table}
                USING ivfflat (embedding {opclass})
                WITH (lists = 100)
            """
        else:
            index_sql = f"""
                CREATE INDEX IF NOT EXISTS {self._chunks_table}_embedding_idx
                ON {self._chunks_table}
                USING hnsw (embedding {opclass})
                WITH (m = 16, ef_construction = 64)
            """
        try:
            await conn.execute(index_sql)
        except psycopg.Error as e:
            # Search still works without the ANN index, only slower.
            logger.warning("Could not create vector index on %s: %s", self._chunks_table, e)

        await conn.execute(f"""
            CREATE INDEX IF NOT EXISTS {self._chunks_table}_doc_id_idx
            ON {self._chunks_table}(doc_id)
        """)

    async def close(self) -> None:
        """Close connection pool."""
        if self._pool is not None:
            await self._pool.close()
            self._pool = None

    async def reset(self) -> None:
        """Drop and recreate both tables.

        Works without a prior ``initialize``, so an index whose stored
        dimension no longer matches the model can still be rebuilt.
        """
        pool = await self._open_pool()
        async with pool.connection() as conn:
            await conn.execute(f"DROP TABLE IF EXISTS {self._chunks_table} CASCADE")
            await conn.execute(f"DROP TABLE IF EXISTS {self._documents_table} CASCADE")
            await self._create_tables(conn)

    async def upsert_chunks(self, document: Document, chunks: Sequence[Chunk]) -> int:
        self._check_chunk_set(document, chunks)

        try:
            async with self.pool.connection() as conn:
                async with conn.transaction():
                    cursor = await conn.execute(
                        f"SELECT count(*) AS n FROM {self._chunks_table} WHERE doc_id = %s",
                        (document.id,),
                    )
                    replaced = (await cursor.fetchone())["n"]

                    await conn.execute(
                        f"""
                        INSERT INTO {self._documents_table}
                        (id, path, title, file_type, file_size, checksum, signature, metadata, tags)
                        VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
                        ON CONFLICT (id) DO UPDATE SET
                            path = EXCLUDED.path,
                            title = EXCLUDED.title,
                            file_type = EXCLUDED.file_type,
                            file_size = EXCLUDED.file_size,
                            checksum = EXCLUDED.checksum,
                            signature = EXCLUDED.signature,
                            metadata = EXCLUDED.metadata,
                            tags = EXCLUDED.tags,
                            updated_at = NOW()
                        """,
                        (
                            document.id,
                            document.path,
                            document.title,
                            document.file_type,
                            document.file_size,
                            document.checksum,
                            document.signature,
                            Jsonb(document.metadata),
                            Jsonb(document.tags.to_dict()),
                        ),
                    )

                    await conn.execute(
                        f"DELETE FROM {self._chunks_table} WHERE doc_id = %s",
                        (document.id,),
                    )

                    if chunks:
                        async with conn.cursor() as cur:
                            await cur.executemany(
                                f"""
                                INSERT INTO {self._chunks_table}
                                (chunk_id, doc_id, chunk_index, content, token_count, embedding, metadata)
                                VALUES (%s, %s, %s, %s, %s, %s::vector, %s)
                                """,
                                [
                                    (
                                        chunk.chunk_id,
                                        chunk.doc_id,
                                        chunk.chunk_index,
                                        chunk.content,
                                        chunk.token_count,
                                        _vector_literal(chunk.embedding),
                                        Jsonb(chunk.metadata),
                                    )
                                    for chunk in chunks
                                ],
                            )
        except psycopg.Error as e:
            raise IndexWriteError(
                f"Failed to store chunks for document {document.id}: {e}", cause=e
            ) from e

        logger.debug("Stored %d chunks for %s (replaced %d)", len(chunks), document.id, replaced)
        return replaced

    async def delete_document(self, doc_id: str) -> int:
        try:
            async with self.pool.connection() as conn:
                async with conn.transaction():
                    cursor = await conn.execute(
                        f"SELECT count(*) AS n FROM {self._chunks_table} WHERE doc_id = %s",
                        (doc_id,),
                    )
                    removed = (await cursor.fetchone())["n"]
                    cursor = await conn.execute(
                        f"DELETE FROM {self._documents_table} WHERE id = %s RETURNING id",
                        (doc_id,),
                    )
                    if await cursor.fetchone() is None:
                        raise NotFoundError("Document", doc_id)
        except psycopg.Error as e:
            raise IndexWriteError(f"Failed to delete document {doc_id}: {e}", cause=e) from e
        return removed

    async def search(
        self,
        query_vector: Sequence[float],
        limit: int = 10,
        threshold: float | None = None,
        metric: Metric | str | None = None,
        filters: SearchFilter | None = None,
    ) -> List[ScoredChunk]:
        self._check_query(query_vector, limit)
        metric = Metric.parse(metric, self._metric)
        operator, _ = _OPERATORS[metric]

        distance = f"(c.embedding {operator} %(query)s::vector)"
        score_expr = f"1 - {distance}" if metric is Metric.COSINE else distance

        clauses: list[str] = []
        params: dict = {"query": _vector_literal(query_vector), "limit": limit}
        if filters is not None:
            clauses, filter_params = filters.to_sql("d", "c")
            params.update(filter_params)
        if threshold is not None:
            comparison = ">=" if metric.higher_is_better else "<="
            clauses.append(f"{score_expr} {comparison} %(threshold)s")
            params["threshold"] = threshold

        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        sql = f"""
            SELECT c.chunk_id, c.doc_id, c.chunk_index, c.content, {score_expr} AS score
            FROM {self._chunks_table} c
            JOIN {self._documents_table} d ON d.id = c.doc_id
            {where}
            ORDER BY {distance}, c.seq
            LIMIT %(limit)s
        """

        async with self.pool.connection() as conn:
            cursor = await conn.execute(sql, params)
            rows = await cursor.fetchall()

        results = []
        for row in rows:
            value = float(row["score"])
            if metric is Metric.COSINE:
                value = max(-1.0, min(1.0, value))
            results.append(
                ScoredChunk(
                    chunk_id=row["chunk_id"],
                    doc_id=row["doc_id"],
                    chunk_index=row["chunk_index"],
                    content=row["content"],
                    score=value,
                )
            )
        return results

    def _row_to_document(self, row: dict) -> Document:
        return Document(
            id=row["id"],
            path=row["path"],
            title=row["title"],
            file_type=row["file_type"],
            file_size=row["file_size"],
            checksum=row["checksum"],
            signature=row["signature"],
            metadata=dict(row["metadata"] or {}),
            tags=DocumentTags.from_dict(row["tags"]),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    def _row_to_chunk(self, row: dict) -> Chunk:
        return Chunk(
            chunk_id=row["chunk_id"],
            doc_id=row["doc_id"],
            chunk_index=row["chunk_index"],
            content=row["content"],
            token_count=row["token_count"],
            embedding=_parse_vector_literal(row["embedding"]),
            metadata=dict(row["metadata"] or {}),
        )

    async def get_document(self, doc_id: str) -> Document | None:
        async with self.pool.connection() as conn:
            cursor = await conn.execute(
                f"SELECT * FROM {self._documents_table} WHERE id = %s", (doc_id,)
            )
            row = await cursor.fetchone()
        return self._row_to_document(row) if row else None

    async def get_document_by_path(self, path: str) -> Document | None:
        async with self.pool.connection() as conn:
            cursor = await conn.execute(
                f"SELECT * FROM {self._documents_table} WHERE path = %s", (path,)
            )
            row = await cursor.fetchone()
        return self._row_to_document(row) if row else None

    async def get_documents(self, doc_ids: Iterable[str]) -> dict[str, Document]:
        ids = list(dict.fromkeys(doc_ids))
        if not ids:
            return {}
        async with self.pool.connection() as conn:
            cursor = await conn.execute(
                f"SELECT * FROM {self._documents_table} WHERE id = ANY(%s)", (ids,)
            )
            rows = await cursor.fetchall()
        return {row["id"]: self._row_to_document(row) for row in rows}

    async def list_documents(
        self,
        limit: int = 50,
        offset: int = 0,
        filters: SearchFilter | None = None,
    ) -> List[Document]:
        clauses: list[str] = []
        params: dict = {"limit": limit, "offset": offset}
        if filters is not None:
            # Keyword filters apply to chunk text and have no meaning here.
            doc_filter = SearchFilter(
                document_ids=filters.document_ids,
                document_type=filters.document_type,
                category=filters.category,
                language=filters.language,
                file_type=filters.file_type,
                metadata=filters.metadata,
            )
            clauses, filter_params = doc_filter.to_sql("d")
            params.update(filter_params)

        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        async with self.pool.connection() as conn:
            cursor = await conn.execute(
                f"""
                SELECT d.* FROM {self._documents_table} d
                {where}
                ORDER BY d.updated_at DESC, d.id DESC
                LIMIT %(limit)s OFFSET %(offset)s
                """,
                params,
            )
            rows = await cursor.fetchall()
        return [self._row_to_document(row) for row in rows]

    async def get_chunks(self, doc_id: str) -> List[Chunk]:
        async with self.pool.connection() as conn:
            cursor = await conn.execute(
                f"""
                SELECT chunk_id, doc_id, chunk_index, content, token_count,
                       embedding::text AS embedding, metadata
                FROM {self._chunks_table}
                WHERE doc_id = %s
                ORDER BY chunk_index
                """,
                (doc_id,),
            )
            rows = await cursor.fetchall()
        return [self._row_to_chunk(row) for row in rows]

    async def get_chunk(self, chunk_id: str) -> Chunk | None:
        async with self.pool.connection() as conn:
            cursor = await conn.execute(
                f"""
                SELECT chunk_id, doc_id, chunk_index, content, token_count,
                       embedding::text AS embedding, metadata
                FROM {self._chunks_table}
                WHERE chunk_id = %s
                """,
                (chunk_id,),
            )
            row = await cursor.fetchone()
        return self._row_to_chunk(row) if row else None

    async def stats(self) -> IndexStats:
        async with self.pool.connection() as conn:
            cursor = await conn.execute(
                f"""
                SELECT count(*) AS total_documents,
                       COALESCE(sum(file_size), 0) AS total_size
                FROM {self._documents_table}
                """
            )
            documents = await cursor.fetchone()

            cursor = await conn.execute(
                f"""
                SELECT count(*) AS total_chunks,
                       COALESCE(avg(token_count), 0) AS average_chunk_size,
                       count(DISTINCT doc_id) AS documents_with_embeddings
                FROM {self._chunks_table}
                """
            )
            chunks = await cursor.fetchone()

            breakdowns = {}
            for tag in ("document_type", "category", "language"):
                cursor = await conn.execute(
                    f"""
                    SELECT tags ->> '{tag}' AS key, count(*) AS n
                    FROM {self._documents_table}
                    GROUP BY 1
                    """
                )
                breakdowns[tag] = {
                    row["key"] or "unknown": row["n"] for row in await cursor.fetchall()
                }

        return IndexStats(
            total_documents=documents["total_documents"],
            total_chunks=chunks["total_chunks"],
            average_chunk_size=round(float(chunks["average_chunk_size"]), 2),
            documents_with_embeddings=chunks["documents_with_embeddings"],
            total_size=int(documents["total_size"]),
            by_type=breakdowns["document_type"],
            by_category=breakdowns["category"],
            by_language=breakdowns["language"],
        )

    async def clear(self) -> None:
        try:
            async with self.pool.connection() as conn:
                await conn.execute(f"TRUNCATE {self._chunks_table}, {self._documents_table}")
        except psycopg.Error as e:
            raise IndexWriteError(f"Failed to clear index: {e}", cause=e) from e
