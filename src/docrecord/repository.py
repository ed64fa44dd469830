from typing import Any, Generic, Mapping, TypeVar, TYPE_CHECKING
from structlog import get_logger
from .cursor import FindOptions, RecordCursor
from .database import Database, database_for
from .exceptions import ValidationFailed
from .gateway import IndexKeys, PersistenceGateway, SortSpec
from .lifecycle import LifecycleState, check_transition
from .schema import ID_FIELD

if TYPE_CHECKING:  # pragma: no cover
    from .record import Record

log = get_logger()

RecordT = TypeVar("RecordT", bound="Record")


class Repository(Generic[RecordT]):
    """
    Persistence operations for one record type against one database.

    Without an explicit database the type's bound database (or the
    process-wide default) is used.
    """

    def __init__(self, record_cls: type[RecordT], database: Database | None = None):
        self.record_cls = record_cls
        self.database = database or database_for(record_cls)

    def __repr__(self) -> str:
        return f"Repository({self.record_cls.__name__}, {self.database.name})"

    @property
    def gateway(self) -> PersistenceGateway:
        return self.database.collection(self.record_cls)

    @property
    def find_timeout(self) -> int:
        if self.record_cls.find_timeout is not None:
            return self.record_cls.find_timeout
        return self.database.find_timeout

    # section: lifecycle ######################################################

    def save(self, record: RecordT, options: dict | None = None) -> str:
        """
        Validate and upsert record, returning its identity.

        Raises ValidationFailed, without writing anything, if the record
        does not validate.
        """
        check_transition(record.state, LifecycleState.persisted)
        if not record.validate():
            raise ValidationFailed(
                f"{self.record_cls.__name__} failed validation: {', '.join(record.errors)}",
                record.errors,
            )
        record.before_save()
        identity = self.gateway.upsert(record.to_document(), options)
        record._mark_persisted(identity)
        log.debug("record saved", record=self.record_cls.__name__, id=identity)
        record.after_save()
        return identity

    def destroy(self, record: RecordT) -> bool:
        """
        Remove record from storage, False if it was never stored.
        """
        record.before_destroy()
        if record.state is not LifecycleState.persisted:
            log.debug(
                "destroy skipped", record=self.record_cls.__name__, state=record.state
            )
            return False
        self.gateway.remove(record.id)  # type: ignore
        record._mark_destroyed()
        log.debug("record destroyed", record=self.record_cls.__name__, id=record.id)
        record.after_destroy()
        return True

    # section: finders ########################################################

    def find(
        self,
        query: Mapping[str, Any] | None = None,
        *,
        sort: SortSpec | None = None,
        offset: int | None = None,
        limit: int | None = None,
    ) -> RecordCursor[RecordT]:
        options = FindOptions(
            sort=sort, offset=offset, limit=limit, timeout=self.find_timeout
        )
        return RecordCursor(self.gateway, self.record_cls, query, options)

    def find_all(
        self,
        query: Mapping[str, Any] | None = None,
        *,
        sort: SortSpec | None = None,
        offset: int | None = None,
        limit: int | None = None,
    ) -> list[RecordT]:
        return list(self.find(query, sort=sort, offset=offset, limit=limit))

    def find_one(
        self,
        query: Mapping[str, Any] | None = None,
        *,
        sort: SortSpec | None = None,
        offset: int | None = None,
    ) -> RecordT | None:
        return self.find(query, sort=sort, offset=offset, limit=1).first()

    def find_by_id(self, identity: str) -> RecordT | None:
        return self.find_one({ID_FIELD: identity})

    def count(self, query: Mapping[str, Any] | None = None) -> int:
        return self.gateway.count(query)

    # section: indexes ########################################################

    def ensure_index(self, keys: IndexKeys, **options: Any) -> str:
        return self.gateway.ensure_index(keys, options)

    def drop_index(self, keys: IndexKeys) -> bool:
        return self.gateway.drop_index(keys)
