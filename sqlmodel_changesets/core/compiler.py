# Compiles changeset definitions into immutable profiles.

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable

from sqlmodel_changesets.core.profile import (
    ChangesetOptions,
    ChangesetProfile,
    NestedAttributesOptions,
    NestedBinding,
    Validator,
)
from sqlmodel_changesets.reflection import camelize, get_association, param_key

if TYPE_CHECKING:
    from sqlmodel_changesets.core.registry import ChangesetRegistry

logger = logging.getLogger(__name__)

BuildFunc = Callable[["ChangesetBuilder"], Any]


@dataclass
class ChangesetDefinition:
    """A registered, not necessarily compiled, changeset."""

    name: str
    options: ChangesetOptions
    build: BuildFunc


class ChangesetBuilder:
    """The object a changeset's build function declares its parameters on.

    Example:

        @User.changeset("register", strict=True)
        def register(cs):
            cs.expect("email", "password")
            cs.permit("name")
            cs.nested_changeset("profile", "create_profile", optional=True)
            cs.validate(email_looks_valid)
    """

    def __init__(self, registry: "ChangesetRegistry", definition: ChangesetDefinition):
        self.registry = registry
        self.definition = definition
        self._permitted: dict[str, bool] = {}
        self._nested_bindings: dict[str, NestedBinding] = {}
        self._validators: list[Validator] = []

    @property
    def model(self) -> type:
        return self.registry.model

    def expect(self, *keys: Any) -> None:
        """Declare required parameter keys."""
        for key in keys:
            self._permitted[str(key)] = False

    def permit(self, *keys: Any) -> None:
        """Declare optional parameter keys."""
        for key in keys:
            self._permitted[str(key)] = True

    def nested_changeset(self, association: str, changeset: str, optional: bool = False, **options: Any) -> None:
        """Route `<association>_attributes` through the associated model's `changeset`.

        Args:
            association: Relationship name on this model (e.g. "books").
            changeset: Changeset name on the related model (e.g. "create_book").
            optional: If True the attributes key is permitted, otherwise expected.
            **options: `allow_destroy`, `limit`, `update_only`, `reject_if`.

        Raises:
            KeyError: If the model has no such relationship.
            UnknownChangeset: If the related model has no such changeset.
            pydantic.ValidationError: If an unknown or malformed option is passed.
        """
        reflected = get_association(self.model, association)

        # Imported here to avoid a circular import between registry and compiler.
        from sqlmodel_changesets.core.registry import registry_for

        target_registry = registry_for(reflected.target)
        # Eager: compiles the child now so unknown names fail at parent compile time.
        target_registry.ensure_compiled(changeset)

        binding = NestedBinding(
            association=association,
            target_model=reflected.target,
            changeset_name=changeset,
            uselist=reflected.uselist,
            target_registry=target_registry,
            options=NestedAttributesOptions(**options),
            many_to_many=reflected.many_to_many,
        )
        self._nested_bindings[association] = binding

        if optional:
            self.permit(binding.attributes_key)
        else:
            self.expect(binding.attributes_key)

    def validate(self, *validators: Validator) -> None:
        """Attach validation hooks that run only for this changeset."""
        self._validators.extend(validators)

    def build(self) -> ChangesetProfile:
        name = self.definition.name
        return ChangesetProfile(
            name=name,
            model=self.model,
            qualified_name=f"{self.model.__name__}.Changesets.{camelize(name)}",
            param_key=param_key(self.model),
            permitted=self._permitted,
            nested_bindings=self._nested_bindings,
            options=self.definition.options,
            validators=tuple(self._validators),
        )


def compile_changeset(registry: "ChangesetRegistry", definition: ChangesetDefinition) -> ChangesetProfile:
    """Run a definition's build function and produce its profile."""
    builder = ChangesetBuilder(registry, definition)
    definition.build(builder)
    profile = builder.build()
    logger.debug(
        f"Compiled {profile.qualified_name}: required={list(profile.required_keys)} "
        f"optional={list(profile.optional_keys)} nested={list(profile.nested_bindings)}"
    )
    return profile
