from typing import Any, Callable, Iterable, Optional

from sqlmodel_changesets.changeset import Changeset, ChangesetInstanceFactory
from sqlmodel_changesets.core.compiler import BuildFunc
from sqlmodel_changesets.core.profile import ChangesetProfile
from sqlmodel_changesets.core.registry import ChangesetRegistry, registry_for


class ChangesetMixin:
    """Changeset conveniences for SQLModel table models.

    Example:

        class User(ChangesetMixin, SQLModel, table=True):
            id: Optional[int] = Field(default=None, primary_key=True)
            email: str
            name: Optional[str] = None


        @User.changeset("register", strict=True)
        def register(cs):
            cs.expect("email")
            cs.permit("name")


        changeset = User.new_changeset("register", {"email": "a@b.com"})
        changeset.save(session)
    """

    @classmethod
    def changeset_registry(cls) -> ChangesetRegistry:
        return registry_for(cls)

    @classmethod
    def changeset(
        cls, name: str, strict: Optional[bool] = None, ignore: Optional[Iterable[str]] = None
    ) -> Callable[[BuildFunc], BuildFunc]:
        """Decorator registering the decorated function as changeset `name`."""
        return registry_for(cls).changeset(name, strict=strict, ignore=ignore)

    @classmethod
    def register_changeset(
        cls, name: str, build: BuildFunc, strict: Optional[bool] = None, ignore: Optional[Iterable[str]] = None
    ) -> None:
        registry_for(cls).register(name, build, strict=strict, ignore=ignore)

    @classmethod
    def changeset_profile(cls, name: str) -> ChangesetProfile:
        return registry_for(cls).resolve(name)

    @classmethod
    def new_changeset(cls, name: str, params: Optional[Any] = None) -> Changeset:
        """Changeset `name` over a new instance of this model."""
        return ChangesetInstanceFactory.new(cls, name, params)

    def to_changeset(self, name: str, params: Optional[Any] = None) -> Changeset:
        """Changeset `name` seeded from this record."""
        return ChangesetInstanceFactory.derive(self, name, params)
