import abc
import copy
import json
import sqlite3
import time
import uuid
from typing import Any, Callable, Iterator, Mapping, Sequence
from structlog import get_logger
from .codec import dumps, encode_value, loads, sort_text
from .schema import ID_FIELD

log = get_logger()

Document = dict[str, Any]
SortSpec = Mapping[str, int] | Sequence[tuple[str, int]] | str
IndexKeys = Mapping[str, int] | Sequence[tuple[str, int]] | str


def normalize_sort(sort: SortSpec | None) -> list[tuple[str, int]]:
    """
    Accept ``"field"``, ``{"field": -1}`` or ``[("field", 1), ...]``.
    """
    if not sort:
        return []
    if isinstance(sort, str):
        return [(sort, 1)]
    if isinstance(sort, Mapping):
        pairs = list(sort.items())
    else:
        pairs = [tuple(pair) for pair in sort]  # type: ignore
    for field, direction in pairs:
        if direction not in (1, -1):
            raise ValueError(f"sort direction for {field} must be 1 or -1")
    return pairs  # type: ignore


def index_name(keys: IndexKeys) -> str:
    return "_".join(f"{field}_{direction}" for field, direction in normalize_sort(keys))


class PersistenceGateway(abc.ABC):
    """
    Storage primitives for a single collection of documents.

    Documents are plain dicts; the identity lives under ``_id``.
    """

    def __init__(self, database_name: str, name: str):
        self.database_name = database_name
        self.name = name

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.database_name}.{self.name})"

    @abc.abstractmethod
    def upsert(self, document: Document, options: dict | None = None) -> str:
        """
        Insert or wholly replace a document, returning its identity.

        A document without ``_id`` is assigned a new one.
        """

    @abc.abstractmethod
    def remove(self, identity: str) -> bool:
        """
        Remove the document with the given identity, True if one was removed.
        """

    @abc.abstractmethod
    def find(
        self,
        query: Mapping[str, Any] | None = None,
        *,
        sort: SortSpec | None = None,
        skip: int | None = None,
        limit: int | None = None,
        timeout: int | None = None,
    ) -> Iterator[Document]:
        """
        Lazily yield documents matching every field of query.

        timeout is in milliseconds, limit of 0 or None means no limit.
        """

    @abc.abstractmethod
    def count(self, query: Mapping[str, Any] | None = None) -> int:
        """
        Return number of documents matching query.
        """

    @abc.abstractmethod
    def ensure_index(self, keys: IndexKeys, options: dict | None = None) -> str:
        """
        Create an index on keys if it is missing, returning its name.
        """

    @abc.abstractmethod
    def drop_index(self, keys: IndexKeys) -> bool:
        """
        Drop the index on keys.
        """

    @abc.abstractmethod
    def reset(self) -> int:
        """
        Remove every document, returning how many there were.
        """

    def _new_identity(self) -> str:
        return str(uuid.uuid1())


class Connection(abc.ABC):
    """
    A handle on a storage server that hands out collection gateways.
    """

    @property
    @abc.abstractmethod
    def connected(self) -> bool:
        """
        True once connect() has been called.
        """

    @abc.abstractmethod
    def connect(self) -> None:
        """
        Open the underlying connection.
        """

    @abc.abstractmethod
    def close(self) -> None:
        """
        Close the underlying connection.
        """

    @abc.abstractmethod
    def collection(self, database_name: str, name: str) -> PersistenceGateway:
        """
        Get the gateway for a collection, creating it if needed.
        """


# section: memory #############################################################


def _matches(document: Document, query: Mapping[str, Any]) -> bool:
    # a None query value also matches a missing field
    return all(document.get(k) == v for k, v in query.items())


def _sort_key(value: Any) -> tuple:
    """
    Order values the way sqlite orders json_extract results:
    null, then numbers (booleans as 0/1), then text. Arrays and objects
    compare as their compact JSON text.
    """
    if value is None:
        return (0, 0)
    if isinstance(value, (bool, int, float)):
        return (1, value)
    if isinstance(value, str):
        return (2, value)
    return (2, sort_text(value))


class MemoryCollection(PersistenceGateway):
    def __init__(self, database_name: str, name: str):
        super().__init__(database_name, name)
        self._documents: dict[str, Document] = {}
        self.indexes: dict[str, dict] = {}

    def upsert(self, document: Document, options: dict | None = None) -> str:
        # stored as python values, but only those sqlite could store too
        encode_value(document)
        document = copy.deepcopy(dict(document))
        identity = document.get(ID_FIELD) or self._new_identity()
        document[ID_FIELD] = identity
        self._documents[identity] = document
        return identity

    def remove(self, identity: str) -> bool:
        return self._documents.pop(identity, None) is not None

    def find(
        self,
        query: Mapping[str, Any] | None = None,
        *,
        sort: SortSpec | None = None,
        skip: int | None = None,
        limit: int | None = None,
        timeout: int | None = None,
    ) -> Iterator[Document]:
        matched = [d for d in self._documents.values() if _matches(d, query or {})]
        # stable sorts applied from the least significant key up
        for field, direction in reversed(normalize_sort(sort)):
            matched.sort(
                key=lambda d: _sort_key(d.get(field)), reverse=direction == -1
            )
        start = skip or 0
        stop = start + limit if limit else None
        for document in matched[start:stop]:
            yield copy.deepcopy(document)

    def count(self, query: Mapping[str, Any] | None = None) -> int:
        return sum(1 for d in self._documents.values() if _matches(d, query or {}))

    def ensure_index(self, keys: IndexKeys, options: dict | None = None) -> str:
        # bookkeeping only, uniqueness is not enforced in memory
        name = index_name(keys)
        self.indexes[name] = dict(options or {})
        return name

    def drop_index(self, keys: IndexKeys) -> bool:
        return self.indexes.pop(index_name(keys), None) is not None

    def reset(self) -> int:
        num = len(self._documents)
        self._documents = {}
        return num


class MemoryConnection(Connection):
    """
    Collections held in process memory, lost when the connection goes away.
    """

    def __init__(self) -> None:
        self._connected = False
        self._collections: dict[tuple[str, str], MemoryCollection] = {}

    @property
    def connected(self) -> bool:
        return self._connected

    def connect(self) -> None:
        self._connected = True

    def close(self) -> None:
        self._connected = False

    def collection(self, database_name: str, name: str) -> MemoryCollection:
        key = (database_name, name)
        if key not in self._collections:
            self._collections[key] = MemoryCollection(database_name, name)
        return self._collections[key]


# section: sqlite #############################################################


def _quote(identifier: str) -> str:
    return '"' + identifier.replace('"', '""') + '"'


def _json_path(field: str) -> str:
    path = '$."' + field + '"'
    return "'" + path.replace("'", "''") + "'"


def _field_expr(field: str) -> str:
    if field == ID_FIELD:
        return "id"
    return f"json_extract(data, {_json_path(field)})"


class _TimeBudget:
    """
    Processing time allowed to one query, in milliseconds.

    Time is only spent while sqlite works on the statement (the execute and
    each row fetch), so a caller pausing between rows never uses it up, and
    other statements run in the meantime are never interrupted.
    """

    def __init__(self, db: sqlite3.Connection, timeout: int | None):
        self.db = db
        self.remaining = timeout / 1000 if timeout else None

    def run(self, step: Callable, *args: Any) -> Any:
        if self.remaining is None:
            return step(*args)
        started = time.monotonic()
        deadline = started + self.remaining
        # a truthy return interrupts the statement with OperationalError
        self.db.set_progress_handler(lambda: time.monotonic() > deadline, 1000)
        try:
            return step(*args)
        finally:
            self.db.set_progress_handler(None, 0)
            self.remaining -= time.monotonic() - started


class SqliteCollection(PersistenceGateway):
    """
    Documents stored as JSON in a ``(id, data)`` table per collection.
    """

    def __init__(self, db: sqlite3.Connection, database_name: str, name: str):
        super().__init__(database_name, name)
        self.db = db
        self.table = _quote(f"{database_name}.{name}")
        self.db.execute(
            f"CREATE TABLE IF NOT EXISTS {self.table} (id TEXT PRIMARY KEY, data JSON)"
        )

    def _where(self, query: Mapping[str, Any] | None) -> tuple[str, list]:
        clauses = []
        params: list[Any] = []
        for field, value in (query or {}).items():
            expr = _field_expr(field)
            value = encode_value(value)
            if value is None:
                clauses.append(f"{expr} IS NULL")
            elif isinstance(value, (dict, list)):
                clauses.append(f"{expr} = json(?)")
                params.append(json.dumps(value))
            else:
                clauses.append(f"{expr} = ?")
                params.append(value)
        if not clauses:
            return "", params
        return " WHERE " + " AND ".join(clauses), params

    def _row_to_document(self, row: sqlite3.Row) -> Document:
        document = loads(row["data"])
        document[ID_FIELD] = row["id"]
        return document

    def upsert(self, document: Document, options: dict | None = None) -> str:
        data = dict(document)
        identity = data.pop(ID_FIELD, None) or self._new_identity()
        # encoded before the write so unsupported values leave the table alone
        payload = dumps(data)
        with self.db:
            self.db.execute(
                f"INSERT INTO {self.table} (id, data) VALUES (?, ?) "
                "ON CONFLICT(id) DO UPDATE SET data = excluded.data",
                (identity, payload),
            )
        return identity

    def remove(self, identity: str) -> bool:
        with self.db:
            res = self.db.execute(f"DELETE FROM {self.table} WHERE id = ?", (identity,))
        return res.rowcount > 0

    def find(
        self,
        query: Mapping[str, Any] | None = None,
        *,
        sort: SortSpec | None = None,
        skip: int | None = None,
        limit: int | None = None,
        timeout: int | None = None,
    ) -> Iterator[Document]:
        where, params = self._where(query)
        sql = f"SELECT id, data FROM {self.table}{where}"
        if order := normalize_sort(sort):
            sql += " ORDER BY " + ", ".join(
                f"{_field_expr(f)} {'ASC' if d == 1 else 'DESC'}" for f, d in order
            )
        if limit or skip:
            sql += " LIMIT ? OFFSET ?"
            params += [limit or -1, skip or 0]

        budget = _TimeBudget(self.db, timeout)
        cursor = self.db.cursor()
        cursor.row_factory = sqlite3.Row  # type: ignore
        budget.run(cursor.execute, sql, params)
        try:
            while (row := budget.run(cursor.fetchone)) is not None:
                yield self._row_to_document(row)
        finally:
            cursor.close()

    def count(self, query: Mapping[str, Any] | None = None) -> int:
        where, params = self._where(query)
        row = self.db.execute(f"SELECT COUNT(*) FROM {self.table}{where}", params)
        return row.fetchone()[0]

    def ensure_index(self, keys: IndexKeys, options: dict | None = None) -> str:
        options = options or {}
        name = index_name(keys)
        columns = ", ".join(
            f"{_field_expr(f)} {'ASC' if d == 1 else 'DESC'}"
            for f, d in normalize_sort(keys)
        )
        unique = "UNIQUE " if options.get("unique") else ""
        with self.db:
            self.db.execute(
                f"CREATE {unique}INDEX IF NOT EXISTS "
                f"{_quote(f'{self.database_name}.{self.name}.{name}')} "
                f"ON {self.table} ({columns})"
            )
        log.info("index ensured", collection=self.name, index=name, unique=bool(unique))
        return name

    def drop_index(self, keys: IndexKeys) -> bool:
        name = index_name(keys)
        with self.db:
            self.db.execute(
                f"DROP INDEX IF EXISTS {_quote(f'{self.database_name}.{self.name}.{name}')}"
            )
        log.info("index dropped", collection=self.name, index=name)
        return True

    def reset(self) -> int:
        with self.db:
            res = self.db.execute(f"DELETE FROM {self.table}")
        return res.rowcount


class SqliteConnection(Connection):
    """
    A sqlite file (or ``:memory:``) holding every database's collections.
    """

    def __init__(self, path: str):
        self.path = path
        self.db: sqlite3.Connection | None = None
        self._collections: dict[tuple[str, str], SqliteCollection] = {}

    def __repr__(self) -> str:
        return f"SqliteConnection({self.path})"

    @property
    def connected(self) -> bool:
        return self.db is not None

    def connect(self) -> None:
        if self.db is None:
            log.debug("connecting", path=self.path)
            self.db = sqlite3.connect(self.path)

    def close(self) -> None:
        if self.db is not None:
            self.db.close()
            self.db = None
            self._collections = {}

    def collection(self, database_name: str, name: str) -> SqliteCollection:
        if self.db is None:
            self.connect()
        key = (database_name, name)
        if key not in self._collections:
            self._collections[key] = SqliteCollection(self.db, database_name, name)  # type: ignore
        return self._collections[key]
