# Hook point into validation: error collection and validator dispatch.

import logging
from typing import TYPE_CHECKING, Iterable, Iterator

from sqlmodel_changesets.core.profile import Validator

if TYPE_CHECKING:
    from sqlmodel_changesets.changeset import Changeset

logger = logging.getLogger(__name__)


class Errors:
    """Validation messages keyed by field name."""

    def __init__(self):
        self._messages: dict[str, list[str]] = {}

    def add(self, field: str, message: str = "is invalid") -> None:
        self._messages.setdefault(field, []).append(message)

    def merge(self, other: "Errors", prefix: str) -> None:
        """Copy another changeset's errors in under `<prefix>.<field>`."""
        for field, messages in other.messages.items():
            for message in messages:
                self.add(f"{prefix}.{field}", message)

    def clear(self) -> None:
        self._messages.clear()

    @property
    def messages(self) -> dict[str, list[str]]:
        return {field: list(messages) for field, messages in self._messages.items()}

    def full_messages(self) -> list[str]:
        return [f"{field} {message}" for field, messages in self._messages.items() for message in messages]

    def __getitem__(self, field: str) -> list[str]:
        return list(self._messages.get(field, []))

    def __contains__(self, field: object) -> bool:
        return field in self._messages

    def __iter__(self) -> Iterator[str]:
        return iter(self._messages)

    def __len__(self) -> int:
        return sum(len(messages) for messages in self._messages.values())

    def __bool__(self) -> bool:
        return bool(self._messages)

    def __repr__(self) -> str:
        return f"Errors({self._messages!r})"


def run_validators(changeset: "Changeset", validators: Iterable[Validator]) -> None:
    """Run each validator against the changeset.

    A string names a method defined on the model class. It is called with the
    changeset in place of the record, so it reads attributes and adds to
    `self.errors` exactly as a callable validator would.
    """
    for validator in validators:
        if isinstance(validator, str):
            method = getattr(changeset._profile.model, validator, None)
            if not callable(method):
                raise AttributeError(f"{changeset._profile.model.__name__} has no validation method '{validator}'")
            method(changeset)
        else:
            validator(changeset)
    if changeset._errors:
        logger.debug(f"{changeset._profile.qualified_name}: validation failed: {changeset._errors.messages}")
