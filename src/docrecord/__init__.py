from .config import Config, connect, load_config
from .cursor import FindOptions, RecordCursor
from .database import Database, configure, get_database, reset_database
from .exceptions import (
    ConfigurationError,
    DocRecordError,
    InvalidTransition,
    InvalidValidator,
    UnknownAttribute,
    ValidationFailed,
)
from .gateway import (
    Connection,
    MemoryConnection,
    PersistenceGateway,
    SqliteConnection,
)
from .lifecycle import LifecycleState
from .naming import collection_name
from .record import Record
from .repository import Repository

__all__ = [
    "Config",
    "ConfigurationError",
    "Connection",
    "Database",
    "DocRecordError",
    "FindOptions",
    "InvalidTransition",
    "InvalidValidator",
    "LifecycleState",
    "MemoryConnection",
    "PersistenceGateway",
    "Record",
    "RecordCursor",
    "Repository",
    "SqliteConnection",
    "UnknownAttribute",
    "ValidationFailed",
    "collection_name",
    "configure",
    "connect",
    "get_database",
    "load_config",
    "reset_database",
]
