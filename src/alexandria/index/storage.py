"""SQLite FTS5 full-text index of scrolls.

Every indexed field is mapped to an analyzer. Fields sharing a tokenizing
analyzer live in one FTS5 table; keyword fields are stored verbatim in the
``scrolls`` table and matched exactly. The mapping is stored in the database
so that an index opened later is searched the way it was built.
"""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterator, List, Mapping, Optional, Tuple

from alexandria.errors import IndexUnavailableError, QuerySyntaxError
from alexandria.index.query import BooleanQuery, TermClause

LOGGER = logging.getLogger(__name__)

TEXT_ANALYZER = "en"
SIMPLE_ANALYZER = "simple"
KEYWORD_ANALYZER = "keyword"
DEFAULT_ANALYZER = TEXT_ANALYZER

TOKENIZERS = {
    TEXT_ANALYZER: "porter unicode61 remove_diacritics 2",
    SIMPLE_ANALYZER: "unicode61 remove_diacritics 2",
}
ANALYZERS = (*TOKENIZERS, KEYWORD_ANALYZER)

INDEXED_FIELDS = ("id", "content", "type", "source", "tags", "hidden", "other")

DEFAULT_FIELD_MAPPING: Dict[str, str] = {
    "id": SIMPLE_ANALYZER,
    "content": TEXT_ANALYZER,
    "type": KEYWORD_ANALYZER,
    "source": TEXT_ANALYZER,
    "tags": TEXT_ANALYZER,
    "hidden": TEXT_ANALYZER,
    "other": TEXT_ANALYZER,
}


def build_field_mapping(
    overrides: Optional[Mapping[str, str]] = None, *, default: str = DEFAULT_ANALYZER
) -> Dict[str, str]:
    """Assign an analyzer to every indexed field, using ``default`` for unmapped ones."""
    overrides = dict(DEFAULT_FIELD_MAPPING if overrides is None else overrides)
    mapping = {name: overrides.pop(name, default) for name in INDEXED_FIELDS}
    if overrides:
        raise ValueError(f"Cannot map unknown fields: {', '.join(sorted(overrides))}")
    for name, analyzer in mapping.items():
        if analyzer not in ANALYZERS:
            raise ValueError(f"Unknown analyzer {analyzer!r} for field {name!r}")
    return mapping


def _fts_phrase(term: str, prefix: bool) -> str:
    phrase = '"' + term.replace('"', '""') + '"'
    return phrase + "*" if prefix else phrase


@dataclass(slots=True)
class SearchHits:
    ids: List[str] = field(default_factory=list)
    total: int = 0


class IndexBatch:
    """Documents staged for a single atomic write."""

    def __init__(self, mapping: Mapping[str, str]) -> None:
        self._mapping = mapping
        self.documents: Dict[str, Dict[str, str]] = {}

    def __len__(self) -> int:
        return len(self.documents)

    def index(self, doc_id: str, fields: Mapping[str, str]) -> None:
        unknown = set(fields) - set(self._mapping)
        if unknown:
            raise ValueError(f"Unknown fields for {doc_id}: {', '.join(sorted(unknown))}")
        for name, value in fields.items():
            if not isinstance(value, str):
                raise ValueError(f"Field {name!r} of {doc_id} is not text")
        document = {name: "" for name in self._mapping}
        document.update(fields)
        document["id"] = doc_id
        self.documents[doc_id] = document


class ScrollIndex:
    """Handle on the on-disk index. Scope one handle to one operation."""

    def __init__(
        self, path: Path, connection: sqlite3.Connection, mapping: Dict[str, str]
    ) -> None:
        self.path = Path(path)
        self.mapping = mapping
        self._conn = connection
        self._groups: Dict[str, List[str]] = {}
        for name, analyzer in mapping.items():
            self._groups.setdefault(analyzer, []).append(name)

    @staticmethod
    def _connect(path: Path) -> sqlite3.Connection:
        conn = sqlite3.connect(path, timeout=30)
        conn.row_factory = sqlite3.Row
        try:
            conn.execute("PRAGMA journal_mode=WAL;")
            conn.execute("PRAGMA synchronous=NORMAL;")
        except sqlite3.Error:
            conn.close()
            raise
        return conn

    @classmethod
    def open(cls, path: Path) -> "ScrollIndex":
        path = Path(path)
        if not path.is_file():
            raise IndexUnavailableError(f"No index at {path}")
        try:
            conn = cls._connect(path)
        except sqlite3.Error as exc:
            raise IndexUnavailableError(f"Cannot open index {path}: {exc}") from exc
        try:
            rows = conn.execute("SELECT field, analyzer FROM field_mapping").fetchall()
        except sqlite3.Error as exc:
            conn.close()
            raise IndexUnavailableError(f"{path} is not a scroll index: {exc}") from exc
        return cls(path, conn, {row["field"]: row["analyzer"] for row in rows})

    @classmethod
    def create(cls, path: Path, mapping: Optional[Mapping[str, str]] = None) -> "ScrollIndex":
        path = Path(path)
        if path.exists():
            raise IndexUnavailableError(f"Cannot create index {path}: file exists")
        mapping = build_field_mapping(mapping)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            conn = cls._connect(path)
        except (OSError, sqlite3.Error) as exc:
            raise IndexUnavailableError(f"Cannot create index {path}: {exc}") from exc

        index = cls(path, conn, mapping)
        try:
            index._ensure_schema()
        except sqlite3.Error as exc:
            conn.close()
            path.unlink(missing_ok=True)
            raise IndexUnavailableError(f"Cannot create index {path}: {exc}") from exc
        LOGGER.info("Created new index at %s", path)
        return index

    @classmethod
    def open_or_create(cls, path: Path) -> Tuple["ScrollIndex", bool]:
        """Open the index at ``path``, creating it if there is none."""
        try:
            return cls.open(path), False
        except IndexUnavailableError as exc:
            LOGGER.debug("%s", exc)
        return cls.create(path), True

    def __enter__(self) -> "ScrollIndex":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        self._conn.close()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        try:
            yield self._conn
            self._conn.commit()
        except Exception:
            self._conn.rollback()
            raise

    def _text_groups(self) -> Iterator[Tuple[str, List[str]]]:
        for analyzer, names in self._groups.items():
            if analyzer != KEYWORD_ANALYZER:
                yield analyzer, names

    def _keyword_fields(self) -> List[str]:
        return self._groups.get(KEYWORD_ANALYZER, [])

    def _ensure_schema(self) -> None:
        keyword_columns = "".join(f", kw_{name} TEXT" for name in self._keyword_fields())
        with self.transaction() as conn:
            conn.execute(
                "CREATE TABLE field_mapping (field TEXT PRIMARY KEY, analyzer TEXT NOT NULL)"
            )
            conn.executemany(
                "INSERT INTO field_mapping(field, analyzer) VALUES (?, ?)",
                list(self.mapping.items()),
            )
            conn.execute(f"CREATE TABLE scrolls (doc_id TEXT PRIMARY KEY{keyword_columns})")
            for analyzer, names in self._text_groups():
                columns = ", ".join(names)
                conn.execute(
                    f"CREATE VIRTUAL TABLE fts_{analyzer} USING fts5("
                    f"doc_id UNINDEXED, {columns}, tokenize = '{TOKENIZERS[analyzer]}')"
                )

    def _delete_rows(self, conn: sqlite3.Connection, doc_id: str) -> bool:
        removed = conn.execute("DELETE FROM scrolls WHERE doc_id = ?", (doc_id,)).rowcount
        for analyzer, _ in self._text_groups():
            conn.execute(f"DELETE FROM fts_{analyzer} WHERE doc_id = ?", (doc_id,))
        return removed > 0

    def _insert_rows(
        self, conn: sqlite3.Connection, doc_id: str, document: Mapping[str, str]
    ) -> None:
        keyword = self._keyword_fields()
        columns = "".join(f", kw_{name}" for name in keyword)
        placeholders = ", ?" * len(keyword)
        conn.execute(
            f"INSERT INTO scrolls(doc_id{columns}) VALUES (?{placeholders})",
            (doc_id, *(document[name] for name in keyword)),
        )
        for analyzer, names in self._text_groups():
            conn.execute(
                f"INSERT INTO fts_{analyzer}(doc_id, {', '.join(names)}) "
                f"VALUES (?{', ?' * len(names)})",
                (doc_id, *(document[name] for name in names)),
            )

    @contextmanager
    def batch(self) -> Iterator[IndexBatch]:
        """Stage documents and commit them together when the block exits cleanly."""
        batch = IndexBatch(self.mapping)
        yield batch
        self.apply(batch)

    def apply(self, batch: IndexBatch) -> None:
        with self.transaction() as conn:
            for doc_id, document in batch.documents.items():
                self._delete_rows(conn, doc_id)
                self._insert_rows(conn, doc_id, document)

    def delete(self, doc_id: str) -> bool:
        with self.transaction() as conn:
            return self._delete_rows(conn, doc_id)

    def doc_count(self) -> int:
        return self._conn.execute("SELECT COUNT(*) FROM scrolls").fetchone()[0]

    def get(self, doc_id: str) -> Optional[Dict[str, str]]:
        """Return the stored fields of a document, or ``None``."""
        row = self._conn.execute("SELECT * FROM scrolls WHERE doc_id = ?", (doc_id,)).fetchone()
        if row is None:
            return None
        document = {name: row[f"kw_{name}"] for name in self._keyword_fields()}
        for analyzer, names in self._text_groups():
            text_row = self._conn.execute(
                f"SELECT {', '.join(names)} FROM fts_{analyzer} WHERE doc_id = ?", (doc_id,)
            ).fetchone()
            for name in names:
                document[name] = text_row[name] if text_row is not None else ""
        return document

    def _match(self, clause: TermClause) -> Dict[str, float]:
        """Documents matching one clause, with their scores."""
        if clause.field is not None and clause.field not in self.mapping:
            return {}
        wanted = [clause.field] if clause.field else list(self.mapping)
        scores: Dict[str, float] = {}

        for name in self._keyword_fields():
            if name not in wanted:
                continue
            if clause.prefix:
                sql = f"SELECT doc_id FROM scrolls WHERE substr(kw_{name}, 1, ?) = ?"
                params: tuple = (len(clause.term), clause.term)
            else:
                sql = f"SELECT doc_id FROM scrolls WHERE kw_{name} = ?"
                params = (clause.term,)
            for row in self._conn.execute(sql, params):
                scores[row["doc_id"]] = scores.get(row["doc_id"], 0.0) + 1.0

        for analyzer, names in self._text_groups():
            columns = [name for name in names if name in wanted]
            if not columns:
                continue
            expression = "{" + " ".join(columns) + "} : " + _fts_phrase(clause.term, clause.prefix)
            try:
                rows = self._conn.execute(
                    f"SELECT doc_id, bm25(fts_{analyzer}) AS score FROM fts_{analyzer} "
                    f"WHERE fts_{analyzer} MATCH ?",
                    (expression,),
                ).fetchall()
            except sqlite3.OperationalError as exc:
                raise QuerySyntaxError(f"syntax error: {exc}") from exc
            for row in rows:
                # bm25() is negative, more negative is better
                scores[row["doc_id"]] = scores.get(row["doc_id"], 0.0) - row["score"]
        return scores

    def search(self, query: BooleanQuery, *, limit: int) -> SearchHits:
        must = [self._match(clause) for clause in query.must]
        should = [self._match(clause) for clause in query.should]
        excluded = set().union(*(self._match(clause) for clause in query.must_not))

        if must:
            candidates = set(must[0]).intersection(*must[1:])
        else:
            candidates = set().union(*should)
        candidates -= excluded

        scored = must + should
        ranking = {doc_id: sum(s.get(doc_id, 0.0) for s in scored) for doc_id in candidates}
        ranked = sorted(candidates, key=lambda doc_id: (-ranking[doc_id], doc_id))
        return SearchHits(ids=ranked[:limit], total=len(candidates))
