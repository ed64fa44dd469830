import functools
import inflection  # type: ignore
from structlog import get_logger

log = get_logger()


@functools.cache
def collection_name(record_cls: type) -> str:
    """
    Name of the collection that stores documents of record_cls.

    An explicit ``collection_name`` on the class wins, otherwise the
    class name is tableized: ``TestEntityThree`` -> ``test_entity_threes``.
    """
    override = getattr(record_cls, "collection_name", None)
    if override is not None:
        name = override
    else:
        name = inflection.tableize(record_cls.__name__)
    log.debug("collection resolved", record=record_cls.__name__, collection=name)
    return name
