import functools
from pydantic import BaseModel

ID_FIELD = "_id"
RESERVED_PREFIX = "_"
# names the record machinery itself uses, never persisted
RESERVED_NAMES = frozenset(("id", "errors", "state"))


def _is_attribute(name: str) -> bool:
    return not name.startswith(RESERVED_PREFIX) and name not in RESERVED_NAMES


@functools.cache
def _attribute_names(record_cls: type[BaseModel]) -> tuple[str, ...]:
    return tuple(name for name in record_cls.model_fields if _is_attribute(name))


def attribute_names(
    record_cls: type[BaseModel], include_id: bool = False
) -> tuple[str, ...]:
    """
    Persistable attribute names of record_cls in declaration order.

    Derived from the class alone, so every instance shares the same set.
    """
    names = _attribute_names(record_cls)
    if include_id:
        return names + (ID_FIELD,)
    return names


def is_attribute(record_cls: type[BaseModel], name: str) -> bool:
    return name in _attribute_names(record_cls)
