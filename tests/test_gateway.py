import datetime
import decimal
import sqlite3
import time
import uuid
import pytest
from docrecord.gateway import (
    MemoryConnection,
    SqliteConnection,
    index_name,
    normalize_sort,
)


def memory_collection():
    return MemoryConnection().collection("testdb", "things")


def sqlite_collection():
    return SqliteConnection(":memory:").collection("testdb", "things")


gateways = pytest.mark.parametrize(
    "make_gateway", [memory_collection, sqlite_collection], ids=["memory", "sqlite"]
)


def _fill(gateway):
    for n, name in enumerate(["cherry", "apple", "banana", "apple"]):
        gateway.upsert({"name": name, "n": n, "tags": {"even": n % 2 == 0}})


def test_normalize_sort():
    assert normalize_sort(None) == []
    assert normalize_sort("name") == [("name", 1)]
    assert normalize_sort({"name": -1, "n": 1}) == [("name", -1), ("n", 1)]
    assert normalize_sort([("name", 1)]) == [("name", 1)]
    with pytest.raises(ValueError):
        normalize_sort({"name": 2})


def test_index_name():
    assert index_name("email") == "email_1"
    assert index_name([("email", 1), ("age", -1)]) == "email_1_age_-1"


@gateways
def test_gateway_repr(make_gateway):
    gateway = make_gateway()
    assert repr(gateway) == f"{gateway.__class__.__name__}(testdb.things)"


@gateways
def test_upsert_assigns_identity(make_gateway):
    gateway = make_gateway()
    identity = gateway.upsert({"name": "apple"})
    assert len(identity) == 36  # uuid
    assert list(gateway.find()) == [{"_id": identity, "name": "apple"}]


@gateways
def test_upsert_replaces(make_gateway):
    gateway = make_gateway()
    identity = gateway.upsert({"name": "apple", "color": "red"})
    assert gateway.upsert({"_id": identity, "name": "pear"}) == identity
    assert list(gateway.find()) == [{"_id": identity, "name": "pear"}]
    assert gateway.count() == 1


@gateways
def test_upsert_does_not_modify_input(make_gateway):
    gateway = make_gateway()
    document = {"name": "apple"}
    gateway.upsert(document)
    assert document == {"name": "apple"}


@gateways
def test_remove(make_gateway):
    gateway = make_gateway()
    identity = gateway.upsert({"name": "apple"})
    assert gateway.remove(identity) is True
    assert gateway.remove(identity) is False
    assert gateway.count() == 0


@gateways
def test_find_query(make_gateway):
    gateway = make_gateway()
    _fill(gateway)
    assert [d["n"] for d in gateway.find({"name": "apple"}, sort="n")] == [1, 3]
    assert [d["n"] for d in gateway.find({"name": "apple", "n": 3})] == [3]
    assert list(gateway.find({"name": "durian"})) == []


@gateways
def test_find_nested_and_null(make_gateway):
    gateway = make_gateway()
    _fill(gateway)
    gateway.upsert({"name": None, "n": 9})
    assert [d["n"] for d in gateway.find({"tags": {"even": True}}, sort="n")] == [0, 2]
    assert [d["n"] for d in gateway.find({"name": None})] == [9]


@gateways
def test_null_query_matches_missing_field(make_gateway):
    gateway = make_gateway()
    gateway.upsert({"name": "apple", "v": None})
    gateway.upsert({"name": "pear"})
    gateway.upsert({"name": "plum", "v": 1})
    assert gateway.count({"v": None}) == 2
    assert sorted(d["name"] for d in gateway.find({"v": None})) == ["apple", "pear"]


@gateways
def test_find_sort_mixed_types(make_gateway):
    gateway = make_gateway()
    for name, v in [("text", "a"), ("int", 1), ("float", 2.5), ("nested", [1])]:
        gateway.upsert({"name": name, "v": v})
    gateway.upsert({"name": "missing"})
    # null, then numbers, then text (arrays sort as their JSON text)
    ascending = [d["name"] for d in gateway.find(sort="v")]
    assert ascending == ["missing", "int", "float", "nested", "text"]
    descending = [d["name"] for d in gateway.find(sort={"v": -1})]
    assert descending == list(reversed(ascending))


@gateways
def test_non_json_values_round_trip(make_gateway):
    gateway = make_gateway()
    document = {
        "at": datetime.datetime(2024, 1, 2, 3, 4, 5),
        "pair": (1, datetime.date(2024, 1, 2)),
        "raw": b"\x00\xff",
        "key": uuid.UUID("12345678-1234-5678-1234-567812345678"),
        "cost": decimal.Decimal("1.10"),
        "lookalike": {"$date": "not a date"},
    }
    identity = gateway.upsert(document)
    assert list(gateway.find()) == [dict(document, _id=identity)]
    assert gateway.count({"pair": (1, datetime.date(2024, 1, 2))}) == 1
    assert gateway.count({"at": datetime.datetime(2024, 1, 2, 3, 4, 5)}) == 1


@gateways
def test_unsupported_value_rejected(make_gateway):
    gateway = make_gateway()
    with pytest.raises(TypeError):
        gateway.upsert({"name": "apple", "tags": {"a", "b"}})
    assert gateway.count() == 0


@gateways
def test_find_by_identity(make_gateway):
    gateway = make_gateway()
    identity = gateway.upsert({"name": "apple"})
    gateway.upsert({"name": "pear"})
    assert [d["name"] for d in gateway.find({"_id": identity})] == ["apple"]


@gateways
def test_find_sort_skip_limit(make_gateway):
    gateway = make_gateway()
    _fill(gateway)
    names = [(d["name"], d["n"]) for d in gateway.find(sort=[("name", 1), ("n", -1)])]
    assert names == [("apple", 3), ("apple", 1), ("banana", 2), ("cherry", 0)]
    page = gateway.find(sort={"n": -1}, skip=1, limit=2)
    assert [d["n"] for d in page] == [2, 1]
    assert [d["n"] for d in gateway.find(sort="n", skip=3)] == [3]
    assert [d["n"] for d in gateway.find(sort="n", limit=0)] == [0, 1, 2, 3]


@gateways
def test_find_is_lazy(make_gateway):
    gateway = make_gateway()
    documents = gateway.find()
    # nothing runs until the first document is requested
    gateway.upsert({"name": "late"})
    assert [d["name"] for d in documents] == ["late"]


@gateways
def test_count(make_gateway):
    gateway = make_gateway()
    _fill(gateway)
    assert gateway.count() == 4
    assert gateway.count({"name": "apple"}) == 2


@gateways
def test_ensure_and_drop_index(make_gateway):
    gateway = make_gateway()
    assert gateway.ensure_index({"name": 1}) == "name_1"
    assert gateway.ensure_index({"name": 1}) == "name_1"
    assert gateway.drop_index({"name": 1}) is True


@gateways
def test_reset(make_gateway):
    gateway = make_gateway()
    _fill(gateway)
    assert gateway.reset() == 4
    assert gateway.count() == 0


def test_memory_collections_shared():
    connection = MemoryConnection()
    connection.collection("testdb", "things").upsert({"name": "apple"})
    assert connection.collection("testdb", "things").count() == 1
    assert connection.collection("otherdb", "things").count() == 0


def test_memory_find_returns_copies():
    gateway = memory_collection()
    gateway.upsert({"name": "apple", "tags": ["a"]})
    next(gateway.find())["tags"].append("b")
    assert next(gateway.find())["tags"] == ["a"]


def test_sqlite_unique_index():
    gateway = sqlite_collection()
    gateway.ensure_index("email", {"unique": True})
    gateway.upsert({"email": "a@b.com"})
    with pytest.raises(sqlite3.IntegrityError):
        gateway.upsert({"email": "a@b.com"})


def test_sqlite_connect_lazily():
    connection = SqliteConnection(":memory:")
    assert not connection.connected
    connection.collection("testdb", "things")
    assert connection.connected
    connection.close()
    assert not connection.connected


def test_sqlite_file_persists(tmp_path):
    path = str(tmp_path / "records.db")
    first = SqliteConnection(path)
    identity = first.collection("testdb", "things").upsert({"name": "apple"})
    first.close()
    second = SqliteConnection(path)
    assert list(second.collection("testdb", "things").find()) == [
        {"_id": identity, "name": "apple"}
    ]


def test_sqlite_timeout_interrupts():
    gateway = sqlite_collection()
    with gateway.db:
        gateway.db.executemany(
            f"INSERT INTO {gateway.table} (id, data) VALUES (?, ?)",
            ((str(n), '{"n": %d}' % n) for n in range(50000)),
        )
    with pytest.raises(sqlite3.OperationalError):
        # sorting on an expression over every row takes well over 1ms
        list(gateway.find(sort="n", timeout=1))


def test_sqlite_timeout_covers_row_streaming():
    gateway = sqlite_collection()
    rows = [("first", '{"match": true}')]
    rows += [(str(n), '{"match": false}') for n in range(200000)]
    rows.append(("last", '{"match": true}'))
    with gateway.db:
        gateway.db.executemany(
            f"INSERT INTO {gateway.table} (id, data) VALUES (?, ?)", rows
        )
    with pytest.raises(sqlite3.OperationalError):
        # the first match is found at once, reaching the last scans every row
        list(gateway.find({"match": True}, timeout=1))


def test_sqlite_timeout_only_counts_work():
    gateway = sqlite_collection()
    for n in range(3):
        gateway.upsert({"n": n})
    documents = gateway.find(sort="n", timeout=50)
    assert next(documents)["n"] == 0
    time.sleep(0.1)
    # other statements between rows run without the handler
    assert gateway.count() == 3
    assert [d["n"] for d in documents] == [1, 2]
