# Nested-attribute acceptance: turns `<association>_attributes` payloads into child changesets
# and writes them through the parent's relationship on persist.

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Literal

from sqlalchemy.orm import Session

from sqlmodel_changesets.core.attribute_filter import is_map_like, to_plain_dict
from sqlmodel_changesets.core.profile import NestedAttributesOptions, NestedBinding
from sqlmodel_changesets.exceptions import NestedRecordNotFoundError, TooManyRecordsError
from sqlmodel_changesets.reflection import primary_key_value

if TYPE_CHECKING:
    from sqlmodel_changesets.changeset import Changeset

logger = logging.getLogger(__name__)

DESTROY_KEY = "_destroy"

# Keys consumed here and never passed on to the child changeset's filter.
UNASSIGNABLE_KEYS = ("id", DESTROY_KEY)

FALSE_STRINGS = ("0", "f", "false", "off", "no", "n")

Action = Literal["build", "update", "destroy"]


@dataclass
class NestedOperation:
    """One accepted child payload and what persisting it will do."""

    action: Action
    changeset: "Changeset"


def _blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, set, dict)):
        return not value
    return False


def _truthy(value: Any) -> bool:
    if _blank(value):
        return False
    if isinstance(value, str):
        return value.strip().lower() not in FALSE_STRINGS
    return bool(value)


def _assignable(attributes: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in attributes.items() if key not in UNASSIGNABLE_KEYS}


def _will_be_destroyed(options: NestedAttributesOptions, attributes: dict[str, Any]) -> bool:
    return options.allow_destroy and _truthy(attributes.get(DESTROY_KEY))


def _call_reject_if(parent: "Changeset", options: NestedAttributesOptions, attributes: dict[str, Any]) -> bool:
    if _will_be_destroyed(options, attributes):
        return False

    reject_if = options.reject_if
    if reject_if is None:
        return False
    if reject_if == "all_blank":
        return all(_blank(value) for key, value in attributes.items() if key != DESTROY_KEY)
    if isinstance(reject_if, str):
        return bool(getattr(parent._record, reject_if)(attributes))
    return bool(reject_if(attributes))


def _child(record: Any, binding: NestedBinding, attributes: dict[str, Any]) -> "Changeset":
    # Imported here to avoid a circular import with the changeset module.
    from sqlmodel_changesets.changeset import ChangesetInstanceFactory

    return ChangesetInstanceFactory.from_profile(record, binding.profile, _assignable(attributes))


def _not_found(parent: "Changeset", binding: NestedBinding, record_id: Any) -> NestedRecordNotFoundError:
    return NestedRecordNotFoundError(
        f"Couldn't find {binding.target_model.__name__} with ID={record_id} "
        f"for {parent._profile.model.__name__} with ID={primary_key_value(parent._record)}",
        association=binding.association,
    )


def accept_nested_attributes(parent: "Changeset", binding: NestedBinding, payload: Any) -> list[NestedOperation]:
    """Scope a nested payload through the binding's changeset.

    Each child payload is filtered by the target changeset immediately, so a
    missing or unexpected key in a child raises with the child's qualified name
    before anything is merged into the parent.

    Raises:
        TypeError: If the payload has the wrong shape for the association.
        TooManyRecordsError: If a collection payload exceeds `limit`.
        NestedRecordNotFoundError: If a payload's id is not one of the parent's children.
    """
    if binding.uselist:
        operations = _accept_collection(parent, binding, payload)
    else:
        operations = _accept_one(parent, binding, payload)

    logger.debug(
        f"{parent._profile.qualified_name}: accepted {len(operations)} nested payload(s) for '{binding.association}'"
    )
    return operations


def _accept_collection(parent: "Changeset", binding: NestedBinding, payload: Any) -> list[NestedOperation]:
    options = binding.options

    if is_map_like(payload):
        payload = to_plain_dict(payload)
        # A single payload carrying an id, or index-keyed payloads ({"0": {...}, "1": {...}}).
        items = [payload] if "id" in payload else list(payload.values())
    elif isinstance(payload, (list, tuple)):
        items = list(payload)
    else:
        raise TypeError(
            f"Mapping or list expected for attribute `{binding.association}`, got {type(payload).__name__}"
        )

    if options.limit is not None and len(items) > options.limit:
        raise TooManyRecordsError(
            f"Maximum {options.limit} records are allowed. Got {len(items)} records instead.",
            association=binding.association,
        )

    existing: dict[str, Any] | None = None
    operations: list[NestedOperation] = []

    for item in items:
        attributes = to_plain_dict(item)
        record_id = attributes.get("id")

        if _blank(record_id):
            if _will_be_destroyed(options, attributes) or _call_reject_if(parent, options, attributes):
                continue
            operations.append(NestedOperation("build", _child(binding.target_model(), binding, attributes)))
            continue

        if existing is None:
            children = getattr(parent._record, binding.association)
            existing = {str(primary_key_value(child)): child for child in children}
        record = existing.get(str(record_id))
        if record is None:
            raise _not_found(parent, binding, record_id)
        if _call_reject_if(parent, options, attributes):
            continue

        action: Action = "destroy" if _will_be_destroyed(options, attributes) else "update"
        operations.append(NestedOperation(action, _child(record, binding, attributes)))

    return operations


def _accept_one(parent: "Changeset", binding: NestedBinding, payload: Any) -> list[NestedOperation]:
    options = binding.options

    if not is_map_like(payload):
        raise TypeError(f"Mapping expected for attribute `{binding.association}`, got {type(payload).__name__}")

    attributes = to_plain_dict(payload)
    record_id = attributes.get("id")
    has_id = not _blank(record_id)

    existing = getattr(parent._record, binding.association) if (options.update_only or has_id) else None

    if existing is not None and (options.update_only or str(primary_key_value(existing)) == str(record_id)):
        if _call_reject_if(parent, options, attributes):
            return []
        action: Action = "destroy" if _will_be_destroyed(options, attributes) else "update"
        return [NestedOperation(action, _child(existing, binding, attributes))]

    if has_id:
        raise _not_found(parent, binding, record_id)

    if _will_be_destroyed(options, attributes) or _call_reject_if(parent, options, attributes):
        return []
    return [NestedOperation("build", _child(binding.target_model(), binding, attributes))]


def apply_nested_operations(
    parent_record: Any, binding: NestedBinding, operations: list[NestedOperation], session: Session
) -> None:
    """Write accepted child changesets through the parent's relationship."""
    association = binding.association

    for operation in operations:
        if operation.action == "build":
            child_record = operation.changeset.apply(session)
            if binding.uselist:
                getattr(parent_record, association).append(child_record)
            else:
                setattr(parent_record, association, child_record)
        elif operation.action == "update":
            operation.changeset.apply(session)
        else:
            child_record = operation.changeset._record
            if binding.uselist:
                collection = getattr(parent_record, association)
                if child_record in collection:
                    collection.remove(child_record)
            elif getattr(parent_record, association) is child_record:
                setattr(parent_record, association, None)
            if binding.many_to_many:
                # Only the link row goes; other parents may still reference the child.
                logger.debug(f"Unlinked {binding.target_model.__name__} {primary_key_value(child_record)}")
                continue
            session.delete(child_record)
            logger.debug(f"Marked {binding.target_model.__name__} {primary_key_value(child_record)} for deletion")
