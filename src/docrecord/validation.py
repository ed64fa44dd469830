import functools
from typing import NamedTuple, TYPE_CHECKING
from structlog import get_logger
from .exceptions import InvalidValidator
from .schema import is_attribute

if TYPE_CHECKING:  # pragma: no cover
    from .record import Record

log = get_logger()

VALIDATOR_PREFIX = "validates_"


class Validator(NamedTuple):
    method: str
    attribute: str


@functools.cache
def validators_for(record_cls: type["Record"]) -> tuple[Validator, ...]:
    """
    Build the validator table for record_cls.

    Any callable named ``validates_<attribute>`` is bound to ``<attribute>``.
    Validators run in name order, and one bound to a name that is not an
    attribute of the class is a configuration error.
    """
    validators = []
    for method in sorted(dir(record_cls)):
        if not method.startswith(VALIDATOR_PREFIX):
            continue
        if not callable(getattr(record_cls, method)):
            continue
        attribute = method[len(VALIDATOR_PREFIX) :]
        if not is_attribute(record_cls, attribute):
            raise InvalidValidator(
                f"{record_cls.__name__}.{method} validates unknown attribute {attribute!r}"
            )
        validators.append(Validator(method, attribute))
    return tuple(validators)


def run_validators(record: "Record") -> list[str]:
    """
    Run validators against record's current values.

    Stops at the first failing validator and returns the names of the
    attributes that failed, an empty list means the record is valid.
    """
    for validator in validators_for(type(record)):
        value = record.get(validator.attribute)
        if not getattr(record, validator.method)(value):
            log.info(
                "validation failed",
                record=type(record).__name__,
                attribute=validator.attribute,
            )
            return [validator.attribute]
    return []
