# Thin wrappers around SQLAlchemy inspection used by the changeset core.

import copy
import re
from dataclasses import dataclass
from typing import Any

from sqlalchemy import inspect
from sqlalchemy.orm import RelationshipProperty

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])|(?<=[A-Z])(?=[A-Z][a-z])")


def param_key(model: type) -> str:
    """Conventional singular parameter key for a model, e.g. `LibraryBook` -> `library_book`."""
    return _CAMEL_BOUNDARY.sub("_", model.__name__).lower()


def camelize(name: str) -> str:
    """`create_user` -> `CreateUser`."""
    return "".join(part[:1].upper() + part[1:] for part in name.split("_") if part)


@dataclass(frozen=True)
class Association:
    """Reflected relationship metadata: name, target class and cardinality."""

    name: str
    target: type
    uselist: bool
    many_to_many: bool = False


def get_association(model: type, name: str) -> Association:
    """Look up a relationship on a mapped model.

    Raises:
        KeyError: If the model declares no relationship called `name`.
    """
    relationship: RelationshipProperty = inspect(model).relationships[name]
    return Association(
        name=name,
        target=relationship.mapper.class_,
        uselist=bool(relationship.uselist),
        many_to_many=relationship.secondary is not None,
    )


def column_keys(model: type) -> list[str]:
    return [attr.key for attr in inspect(model).column_attrs]


def primary_key_names(model: type) -> list[str]:
    mapper = inspect(model)
    return [mapper.get_property_by_column(column).key for column in mapper.primary_key]


def primary_key_value(record: Any) -> Any:
    """Returns a single-column primary key value, or a tuple for composite keys."""
    values = tuple(getattr(record, key) for key in primary_key_names(type(record)))
    return values[0] if len(values) == 1 else values


def snapshot_columns(record: Any) -> dict[str, Any]:
    """Deep copy of a record's column values."""
    return {key: copy.deepcopy(getattr(record, key)) for key in column_keys(type(record))}


def record_status(record: Any) -> dict[str, bool]:
    """Persisted/new/destroyed flags derived from the record's instance state."""
    state = inspect(record)
    new_record = state.key is None
    destroyed = bool(state.deleted or state.was_deleted)
    return {
        "new_record": new_record,
        "destroyed": destroyed,
        "persisted": not new_record and not destroyed,
    }
