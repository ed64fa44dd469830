from typing import Any, ClassVar, Iterator, Mapping, Self
from pydantic import BaseModel, ConfigDict, PrivateAttr
from .cursor import RecordCursor
from .database import Database, bind
from .exceptions import UnknownAttribute
from .gateway import IndexKeys, SortSpec
from .lifecycle import Hooks, LifecycleState, check_transition
from .repository import Repository
from .schema import ID_FIELD, RESERVED_PREFIX, attribute_names, is_attribute
from .validation import run_validators


class Record(BaseModel, Hooks):
    """
    Base class for persistable records.

    Declared fields are the record's attributes; underscore-prefixed names
    are private to the instance and never stored. Validators are methods
    named ``validates_<attribute>`` and hooks are the methods of ``Hooks``.

    ::

        class User(Record):
            email: str | None = None
            password: str | None = None

            @staticmethod
            def validates_email(value):
                return value is not None and "@" in value
    """

    model_config = ConfigDict(validate_assignment=True)

    # explicit collection name, derived from the class name when None
    collection_name: ClassVar[str | None] = None
    # milliseconds, the database's find_timeout when None
    find_timeout: ClassVar[int | None] = None

    _id: str | None = PrivateAttr(None)
    _state: LifecycleState = PrivateAttr(LifecycleState.new)
    _errors: list[str] = PrivateAttr(default_factory=list)

    def __init__(
        self,
        attributes: Mapping[str, Any] | None = None,
        /,
        *,
        is_new: bool = True,
        **kwargs: Any,
    ):
        data = {**(attributes or {}), **kwargs}
        identity = None if is_new else data.pop(ID_FIELD, None)
        for name in data:
            if not is_attribute(type(self), name):
                raise UnknownAttribute(
                    f"The attribute {name} does not exist in the {type(self).__name__} record"
                )
        super().__init__(**data)
        if is_new:
            self.after_new()
        else:
            self._id = identity
            self._state = LifecycleState.persisted

    @classmethod
    def from_document(cls, document: Mapping[str, Any]) -> Self:
        """
        Materialize a stored document as a persisted record.
        """
        return cls(document, is_new=False)

    # section: attributes #####################################################

    def __setattr__(self, name: str, value: Any) -> None:
        if not name.startswith(RESERVED_PREFIX) and not is_attribute(type(self), name):
            raise UnknownAttribute(
                f"The attribute {name} does not exist in the {type(self).__name__} record"
            )
        super().__setattr__(name, value)

    def __getitem__(self, name: str) -> Any:
        return self.get(name)

    def __setitem__(self, name: str, value: Any) -> None:
        self.set(name, value)

    def __iter__(self) -> Iterator[tuple[str, Any]]:  # type: ignore[override]
        for name in attribute_names(type(self)):
            yield name, getattr(self, name)
        yield ID_FIELD, self._id

    @classmethod
    def schema_attributes(cls, include_id: bool = False) -> tuple[str, ...]:
        return attribute_names(cls, include_id)

    def get(self, name: str) -> Any:
        """
        Value of an attribute (or the identity for ``_id``), None if unknown.
        """
        if name == ID_FIELD:
            return self._id
        if is_attribute(type(self), name):
            return getattr(self, name)
        return None

    def set(self, name: str, value: Any) -> None:
        if not is_attribute(type(self), name):
            raise UnknownAttribute(
                f"The attribute {name} does not exist in the {type(self).__name__} record"
            )
        setattr(self, name, value)

    def attributes(self, include_id: bool = False) -> dict[str, Any]:
        values = {name: getattr(self, name) for name in attribute_names(type(self))}
        if include_id:
            values[ID_FIELD] = self._id
        return values

    def to_document(self) -> dict[str, Any]:
        """
        Snapshot handed to storage, with ``_id`` once assigned.
        """
        document = self.model_dump(include=set(attribute_names(type(self))))
        if self._id is not None:
            document[ID_FIELD] = self._id
        return document

    # section: lifecycle ######################################################

    @property
    def id(self) -> str | None:
        return self._id

    @property
    def state(self) -> LifecycleState:
        return self._state

    @property
    def errors(self) -> list[str]:
        return list(self._errors)

    @property
    def is_new(self) -> bool:
        return self._state is LifecycleState.new

    @property
    def is_persisted(self) -> bool:
        return self._state is LifecycleState.persisted

    @property
    def is_destroyed(self) -> bool:
        return self._state is LifecycleState.destroyed

    def validate(self) -> bool:  # type: ignore[override]
        self.before_validation()
        self._errors = run_validators(self)
        self.after_validation()
        return not self._errors

    def save(self, options: dict | None = None) -> str:
        return self.repository().save(self, options)

    def destroy(self) -> bool:
        return self.repository().destroy(self)

    def _mark_persisted(self, identity: str) -> None:
        check_transition(self._state, LifecycleState.persisted)
        if self._id is None:
            self._id = identity
        self._state = LifecycleState.persisted

    def _mark_destroyed(self) -> None:
        check_transition(self._state, LifecycleState.destroyed)
        self._state = LifecycleState.destroyed

    # section: finders ########################################################

    @classmethod
    def bind(cls, database: Database) -> None:
        bind(cls, database)

    @classmethod
    def repository(cls, database: Database | None = None) -> Repository[Self]:
        return Repository(cls, database)

    @classmethod
    def find(
        cls,
        query: Mapping[str, Any] | None = None,
        *,
        sort: SortSpec | None = None,
        offset: int | None = None,
        limit: int | None = None,
    ) -> RecordCursor[Self]:
        return cls.repository().find(query, sort=sort, offset=offset, limit=limit)

    @classmethod
    def find_all(
        cls,
        query: Mapping[str, Any] | None = None,
        *,
        sort: SortSpec | None = None,
        offset: int | None = None,
        limit: int | None = None,
    ) -> list[Self]:
        return cls.repository().find_all(query, sort=sort, offset=offset, limit=limit)

    @classmethod
    def find_one(
        cls,
        query: Mapping[str, Any] | None = None,
        *,
        sort: SortSpec | None = None,
        offset: int | None = None,
    ) -> Self | None:
        return cls.repository().find_one(query, sort=sort, offset=offset)

    @classmethod
    def find_by_id(cls, identity: str) -> Self | None:
        return cls.repository().find_by_id(identity)

    @classmethod
    def count(cls, query: Mapping[str, Any] | None = None) -> int:
        return cls.repository().count(query)

    @classmethod
    def ensure_index(cls, keys: IndexKeys, **options: Any) -> str:
        return cls.repository().ensure_index(keys, **options)

    @classmethod
    def drop_index(cls, keys: IndexKeys) -> bool:
        return cls.repository().drop_index(keys)
