# Filters raw input down to the keys a changeset profile declares.

import logging
from enum import Enum
from typing import Any, Mapping

from pydantic import BaseModel

from sqlmodel_changesets.core.profile import ChangesetProfile
from sqlmodel_changesets.exceptions import MissingParametersError, StrictParametersError

logger = logging.getLogger(__name__)


def is_map_like(value: Any) -> bool:
    """True for plain mappings, pydantic models and multidict-style wrappers."""
    if isinstance(value, (Mapping, BaseModel)):
        return True
    return callable(getattr(value, "to_dict", None))


def _normalize_key(key: Any) -> str:
    if isinstance(key, Enum):
        key = key.value
    return key if isinstance(key, str) else str(key)


def to_plain_dict(raw: Any) -> dict[str, Any]:
    """Convert any accepted input shape into a plain dict with string keys.

    Raises:
        TypeError: If `raw` is not map-like.
    """
    if not is_map_like(raw):
        raise TypeError(
            f"When assigning attributes, you must pass a mapping as an argument, {type(raw).__name__} passed."
        )

    if isinstance(raw, BaseModel):
        # Request bodies parsed by pydantic: only what the client actually sent.
        raw = raw.model_dump(exclude_unset=True)
    elif not isinstance(raw, Mapping):
        raw = raw.to_dict()

    return {_normalize_key(key): value for key, value in raw.items()}


def normalize_attributes(raw: Any, param_key: str) -> dict[str, Any]:
    """Normalize input and unwrap one level of `{param_key: {...}}` namespacing."""
    attributes = to_plain_dict(raw)

    wrapped = attributes.get(param_key)
    if wrapped is not None and is_map_like(wrapped):
        attributes = to_plain_dict(wrapped)

    return attributes


def filter_attributes(raw: Any, profile: ChangesetProfile) -> dict[str, Any]:
    """
    Pick the expected and permitted attributes out of `raw`.

    Accepts flat mappings, mappings namespaced under the model's parameter key,
    pydantic models, and multidict-style objects exposing `to_dict()`. Filtering
    is all-or-nothing: either every required key is present (and, in strict mode,
    nothing unexpected is) or an error is raised.

    Args:
        raw: The submitted attributes.
        profile: The compiled changeset profile.

    Returns:
        A new dict holding the accepted attributes in declaration order.

    Raises:
        TypeError: If `raw` is not map-like.
        MissingParametersError: If any expected key is absent.
        StrictParametersError: If strict mode is on and undeclared keys are present.
    """
    attributes = normalize_attributes(raw, profile.param_key)

    filtered_attributes: dict[str, Any] = {}
    missing_attributes: list[str] = []

    for key, optional in profile.permitted.items():
        if key in attributes:
            filtered_attributes[key] = attributes[key]
        elif not optional:
            missing_attributes.append(key)

    if missing_attributes:
        raise MissingParametersError(profile.qualified_name, missing_attributes)

    # Cheap count comparison first; the set difference only runs when there are leftovers.
    if profile.options.strict and len(attributes) > len(filtered_attributes):
        ignored = set(profile.options.ignore)
        extra_attributes = [key for key in attributes if key not in filtered_attributes and key not in ignored]
        if extra_attributes:
            raise StrictParametersError(profile.qualified_name, extra_attributes)

    logger.debug(f"{profile.qualified_name}: accepted {list(filtered_attributes)}")
    return filtered_attributes
