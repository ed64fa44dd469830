from typing import Any, Generic, Iterator, Mapping, TypeVar, TYPE_CHECKING
from pydantic import BaseModel, ConfigDict, Field
from .gateway import Document, PersistenceGateway, SortSpec

if TYPE_CHECKING:  # pragma: no cover
    from .record import Record

RecordT = TypeVar("RecordT", bound="Record")


class FindOptions(BaseModel):
    """
    Options applied to a query before it runs: sort, then offset, then limit.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    sort: SortSpec | None = None
    offset: int | None = Field(None, ge=0)
    limit: int | None = Field(None, ge=0)
    timeout: int | None = Field(None, ge=0)


class RecordCursor(Generic[RecordT]):
    """
    Lazy, single-pass sequence of records produced by a query.

    The query runs on the first ``next()``, and each stored document is
    turned into a persisted record only when it is reached.
    """

    def __init__(
        self,
        gateway: PersistenceGateway,
        record_cls: type[RecordT],
        query: Mapping[str, Any] | None = None,
        options: FindOptions | None = None,
    ):
        self.gateway = gateway
        self.record_cls = record_cls
        self.query = dict(query or {})
        self.options = options or FindOptions()
        self._documents: Iterator[Document] | None = None

    def __repr__(self) -> str:
        return f"RecordCursor({self.record_cls.__name__}, {self.query})"

    def __iter__(self) -> "RecordCursor[RecordT]":
        return self

    def __next__(self) -> RecordT:
        if self._documents is None:
            self._documents = self.gateway.find(
                self.query,
                sort=self.options.sort,
                skip=self.options.offset,
                limit=self.options.limit,
                timeout=self.options.timeout,
            )
        return self.record_cls.from_document(next(self._documents))

    def rewind(self) -> None:
        """
        Drop the running query, the next iteration executes it again.
        """
        if self._documents is not None:
            close = getattr(self._documents, "close", None)
            if close:
                close()
        self._documents = None

    def first(self) -> RecordT | None:
        return next(self, None)

    def count(self) -> int:
        """
        Number of stored documents matching the query, ignoring offset/limit.
        """
        return self.gateway.count(self.query)
