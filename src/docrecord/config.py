import logging
import structlog
import pydantic
from pydantic_settings import BaseSettings, SettingsConfigDict
from .database import DEFAULT_FIND_TIMEOUT, Database
from .gateway import Connection, MemoryConnection, SqliteConnection

MEMORY_URL = "memory://"


class Config(BaseSettings):
    database_url: str = pydantic.Field(
        "docrecord.db",
        description="Path to the sqlite file, ':memory:', or memory:// for in-process storage.",
    )
    database_name: str = pydantic.Field(
        "docrecord",
        description="Name of the database collections live in.",
    )
    find_timeout: int = pydantic.Field(
        DEFAULT_FIND_TIMEOUT,
        description="Query timeout in milliseconds.",
    )
    log_level: str = pydantic.Field(
        "info",
        description="Logging level.",
    )
    log_file: str = pydantic.Field(
        "STDOUT",
        description="Path to the log file.",
    )
    log_format: str = pydantic.Field(
        "text",
        description="Log format.",
    )
    model_config = SettingsConfigDict(env_prefix="docrecord_")


def load_config(**overrides) -> Config:
    config = Config(**overrides)
    # configure log output
    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(),
    ]
    if config.log_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    if config.log_file == "STDOUT":
        factory = structlog.PrintLoggerFactory()
    else:
        factory = structlog.PrintLoggerFactory(file=open(config.log_file, "a"))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, config.log_level.upper())
        ),
        logger_factory=factory,
    )
    return config


def make_connection(database_url: str) -> Connection:
    if database_url == MEMORY_URL:
        return MemoryConnection()
    return SqliteConnection(database_url)


def connect(config: Config) -> Database:
    """
    Build a Database from config, the connection opens on first use.
    """
    return Database(
        make_connection(config.database_url),
        config.database_name,
        find_timeout=config.find_timeout,
    )
