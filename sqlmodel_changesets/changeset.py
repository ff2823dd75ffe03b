# Scoped-mutation instances ("changesets") and the factory that creates them.

import logging
from enum import Enum
from typing import TYPE_CHECKING, Any, Optional

from sqlalchemy import inspect
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from sqlmodel_changesets.core.attribute_filter import filter_attributes
from sqlmodel_changesets.core.profile import ChangesetProfile
from sqlmodel_changesets.core.registry import registry_for
from sqlmodel_changesets.exceptions import ChangesetInvalid, ChangesetPersistError
from sqlmodel_changesets.nested_attributes import NestedOperation, accept_nested_attributes, apply_nested_operations
from sqlmodel_changesets.reflection import primary_key_names, record_status, snapshot_columns
from sqlmodel_changesets.validation import Errors, run_validators

if TYPE_CHECKING:
    # Only needed for annotations; importing it at runtime requires greenlet.
    from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)


class ChangesetState(str, Enum):
    UNBOUND = "unbound"
    DERIVED = "derived"
    FILTERED = "filtered"
    VALID = "valid"
    INVALID = "invalid"
    PERSISTED = "persisted"
    PERSIST_FAILED = "persist_failed"


class Changeset:
    """A record-shaped view of one model instance, writable only through its profile.

    Column values are deep-copied from the source record when the changeset is
    bound, so nothing assigned here touches the record until the changeset is
    saved. Attribute reads return pending changes first, then the copied values.

    Column values take precedence over the attributes below, so a model with a
    `name` or `state` column reads that column. The changeset's own metadata is
    always reachable through `changeset_profile`.

    Attributes:
        profile: The compiled changeset profile.
        record: The record this changeset was derived from and writes to on save.
        changes: Accepted values not yet written to `record`.
        errors: Messages from the last validation run.
        state: Where the changeset is in its lifecycle.
        new_record: The source record had not been persisted when bound.
        persisted: The source record was persisted and not deleted when bound.
        destroyed: The source record had been deleted when bound.
    """

    def __init__(self, profile: ChangesetProfile):
        self._data: dict[str, Any] = {}
        self._changes: dict[str, Any] = {}
        self._nested: dict[str, list[NestedOperation]] = {}
        self._profile = profile
        self._record: Any = None
        self._errors = Errors()
        self._state = ChangesetState.UNBOUND
        self._new_record = True
        self._persisted = False
        self._destroyed = False

    def __getattribute__(self, name: str) -> Any:
        if not name.startswith("_"):
            data = object.__getattribute__(self, "_data")
            if name in data:
                changes = object.__getattribute__(self, "_changes")
                return changes[name] if name in changes else data[name]
        return object.__getattribute__(self, name)

    def __getattr__(self, name: str) -> Any:
        # Reached for accepted keys that are not columns, e.g. a password confirmation.
        if name.startswith("_"):
            raise AttributeError(name)
        changes = self.__dict__.get("_changes", {})
        if name in changes:
            return changes[name]
        profile = self.__dict__.get("_profile")
        model_name = profile.model.__name__ if profile is not None else "unbound"
        raise AttributeError(f"{type(self).__name__} for {model_name} has no attribute '{name}'")

    def __getitem__(self, key: str) -> Any:
        if key in self._changes:
            return self._changes[key]
        return self._data[key]

    def __repr__(self) -> str:
        return f"<Changeset {self._profile.qualified_name} state={self._state.value} changes={self._changes!r}>"

    @property
    def changeset_profile(self) -> ChangesetProfile:
        return self._profile

    @property
    def profile(self) -> ChangesetProfile:
        return self._profile

    @property
    def changeset_name(self) -> str:
        return self._profile.name

    @property
    def model(self) -> type:
        return self._profile.model

    @property
    def record(self) -> Any:
        return self._record

    @property
    def changes(self) -> dict[str, Any]:
        return self._changes

    @property
    def errors(self) -> Errors:
        return self._errors

    @property
    def state(self) -> ChangesetState:
        return self._state

    @property
    def new_record(self) -> bool:
        return self._new_record

    @property
    def persisted(self) -> bool:
        return self._persisted

    @property
    def destroyed(self) -> bool:
        return self._destroyed

    @property
    def nested(self) -> dict[str, list[NestedOperation]]:
        return {association: list(operations) for association, operations in self._nested.items()}

    def bind(self, record: Any) -> "Changeset":
        """Copy `record`'s column values and status flags into this changeset."""
        if not isinstance(record, self._profile.model):
            raise TypeError(f"{self._profile.qualified_name} cannot be bound to {type(record).__name__}")

        self._data = snapshot_columns(record)
        status = record_status(record)
        self._new_record = status["new_record"]
        self._persisted = status["persisted"]
        self._destroyed = status["destroyed"]
        self._record = record
        self._state = ChangesetState.DERIVED
        return self

    def assign(self, params: Any) -> "Changeset":
        """Filter `params` through the profile and merge what was accepted.

        All-or-nothing: if filtering fails for this changeset or any nested child,
        nothing is merged.
        """
        accepted = filter_attributes(params, self._profile)

        nested: dict[str, list[NestedOperation]] = {}
        for association, binding in self._profile.nested_bindings.items():
            if binding.attributes_key in accepted:
                nested[association] = accept_nested_attributes(self, binding, accepted.pop(binding.attributes_key))

        self._changes.update(accepted)
        self._nested.update(nested)
        self._errors.clear()
        self._state = ChangesetState.FILTERED
        return self

    def validate(self) -> bool:
        """Run this changeset's validators and those of nested children being written."""
        self._errors.clear()
        run_validators(self, self._profile.validators)

        for association, operations in self._nested.items():
            for operation in operations:
                if operation.action == "destroy":
                    continue
                child = operation.changeset
                if not child.validate():
                    self._errors.merge(child._errors, prefix=association)

        self._state = ChangesetState.INVALID if self._errors else ChangesetState.VALID
        return not self._errors

    def is_valid(self) -> bool:
        return self.validate()

    def apply(self, session: Session) -> Any:
        """Write accepted changes, including nested ones, onto the ORM objects."""
        for key, value in self._changes.items():
            setattr(self._record, key, value)
        for association, operations in self._nested.items():
            apply_nested_operations(self._record, self._profile.nested_bindings[association], operations, session)
        return self._record

    def save(self, session: Session) -> bool:
        """Validate, then insert or update the record through `session`.

        Returns:
            False if validation failed, True once the session has committed.

        Raises:
            ChangesetPersistError: If the session fails to flush or commit.
        """
        if not self.validate():
            return False

        try:
            self._persist(session)
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            raise self._persist_failed(e) from e

        self._mark_persisted()
        return True

    async def save_async(self, session: "AsyncSession") -> bool:
        """`save` for an `AsyncSession`.

        Nested payloads referencing existing children read the parent's relationship
        when assigned, so load it eagerly (e.g. `selectinload`) before assigning.
        """
        if not self.validate():
            return False

        try:
            await session.run_sync(self._persist)
            await session.commit()
        except SQLAlchemyError as e:
            await session.rollback()
            raise self._persist_failed(e) from e

        self._mark_persisted()
        return True

    def save_or_raise(self, session: Session) -> Any:
        """Like `save`, but raises `ChangesetInvalid` instead of returning False.

        Returns:
            The saved record.
        """
        if not self.save(session):
            raise ChangesetInvalid(self._profile.qualified_name, self._errors.messages)
        return self._record

    def _persist(self, session: Session) -> None:
        record = self.apply(session)
        session.add(record)
        session.flush()

    def _persist_failed(self, error: SQLAlchemyError) -> ChangesetPersistError:
        self._state = ChangesetState.PERSIST_FAILED
        logger.error(f"Error persisting {self._profile.qualified_name}: {error}")
        return ChangesetPersistError(
            f"{self._profile.qualified_name}: could not be saved: {error}",
            changeset_name=self._profile.qualified_name,
            original_error=error,
        )

    def _mark_persisted(self) -> None:
        self._data.update((key, value) for key, value in self._changes.items() if key in self._data)
        # The identity key is populated by the flush and readable without a database round trip.
        identity = inspect(self._record).identity
        if identity is not None:
            self._data.update(zip(primary_key_names(self._profile.model), identity))
        self._changes = {}
        self._nested = {}
        self._new_record = False
        self._persisted = True
        self._state = ChangesetState.PERSISTED
        logger.info(f"Saved {self._profile.qualified_name} ({self._profile.model.__name__} {identity})")


class ChangesetInstanceFactory:
    """Creates changesets either for a fresh record or derived from an existing one."""

    @staticmethod
    def new(model: type, name: str, params: Optional[Any] = None) -> Changeset:
        """Changeset `name` over a new, empty `model` instance."""
        return ChangesetInstanceFactory.derive(model(), name, params)

    @staticmethod
    def derive(record: Any, name: str, params: Optional[Any] = None) -> Changeset:
        """Changeset `name` seeded from `record`.

        Example:

            user = session.get(User, user_id)
            changeset = ChangesetInstanceFactory.derive(user, "change_email", request_body)
            changeset.save(session)
        """
        profile = registry_for(type(record)).resolve(name)
        return ChangesetInstanceFactory.from_profile(record, profile, params)

    @staticmethod
    def from_profile(record: Any, profile: ChangesetProfile, params: Optional[Any] = None) -> Changeset:
        changeset = Changeset(profile).bind(record)
        if params is not None:
            changeset.assign(params)
        return changeset
