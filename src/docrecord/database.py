from typing import TYPE_CHECKING
from pydantic import BaseModel, ConfigDict
from structlog import get_logger
from .exceptions import ConfigurationError
from .gateway import Connection, PersistenceGateway
from .naming import collection_name

if TYPE_CHECKING:  # pragma: no cover
    from .record import Record

log = get_logger()

DEFAULT_FIND_TIMEOUT = 20000

# module-level registries, kept off the pydantic record classes
_DEFAULT: "Database | None" = None
_BOUND: dict[type, "Database"] = {}


class Database(BaseModel):
    """
    A connection plus the name of the database records are stored in.

    find_timeout is the query timeout in milliseconds given to every find.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    connection: Connection
    name: str
    find_timeout: int = DEFAULT_FIND_TIMEOUT

    def __init__(
        self,
        connection: Connection | None,
        name: str | None,
        *,
        find_timeout: int = DEFAULT_FIND_TIMEOUT,
    ):
        if connection is None:
            raise ConfigurationError("Database connection must be a valid Connection")
        if not name:
            raise ConfigurationError("Database name must be a non-empty string")
        super().__init__(connection=connection, name=name, find_timeout=find_timeout)

    def __repr__(self) -> str:
        return f"Database({self.name}, {self.connection!r})"

    def collection(self, record_cls: type["Record"]) -> PersistenceGateway:
        if not self.connection.connected:
            self.connection.connect()
        return self.connection.collection(self.name, collection_name(record_cls))


def configure(database: Database) -> None:
    """
    Set the process-wide database, once, before any record type is used.
    """
    global _DEFAULT
    if _DEFAULT is not None and _DEFAULT is not database:
        raise ConfigurationError(f"database already configured as {_DEFAULT!r}")
    _DEFAULT = database
    log.info("database configured", database=database.name)


def get_database() -> Database:
    if _DEFAULT is None:
        raise ConfigurationError(
            "no database configured; call docrecord.configure() first"
        )
    return _DEFAULT


def reset_database() -> None:
    """
    Forget the process-wide database and every class binding.
    """
    global _DEFAULT
    _DEFAULT = None
    _BOUND.clear()


def bind(record_cls: type, database: Database) -> None:
    """
    Store record_cls (and its subclasses) in database instead of the default.
    """
    _BOUND[record_cls] = database


def database_for(record_cls: type) -> Database:
    for cls in record_cls.__mro__:
        if cls in _BOUND:
            return _BOUND[cls]
    return get_database()
