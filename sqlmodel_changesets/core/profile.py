# Compiled changeset profiles and the option models they carry.

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Callable, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

if TYPE_CHECKING:
    from sqlmodel_changesets.core.registry import ChangesetRegistry

# A validator is a callable receiving the changeset, or the name of a method on the model.
Validator = Union[Callable[[Any], Any], str]

RejectIf = Union[Callable[[dict[str, Any]], bool], str]


class ChangesetOptions(BaseModel):
    """Per-changeset options resolved at registration time."""

    model_config = ConfigDict(frozen=True)

    strict: bool = False
    ignore: tuple[str, ...] = ()


class NestedAttributesOptions(BaseModel):
    """Options forwarded to nested-attribute acceptance for one association.

    Attributes:
        allow_destroy: Honour the `_destroy` sentinel on payloads for existing children.
        limit: Maximum number of payloads accepted for a collection association.
        update_only: For single associations, always update the existing child.
        reject_if: Callable, model method name, or "all_blank"; payloads it matches are skipped.
    """

    model_config = ConfigDict(frozen=True, extra="forbid", arbitrary_types_allowed=True)

    allow_destroy: bool = False
    limit: Optional[int] = Field(default=None, gt=0)
    update_only: bool = False
    reject_if: Optional[RejectIf] = None


@dataclass(frozen=True, eq=False)
class NestedBinding:
    """Routes `<association>_attributes` payloads through the target model's changeset."""

    association: str
    target_model: type
    changeset_name: str
    uselist: bool
    target_registry: "ChangesetRegistry" = field(repr=False)
    options: NestedAttributesOptions = field(default_factory=NestedAttributesOptions)
    # Link-table association: destroying a child only unlinks it.
    many_to_many: bool = False

    @property
    def attributes_key(self) -> str:
        return f"{self.association}_attributes"

    @property
    def profile(self) -> "ChangesetProfile":
        # The registry is memoized, so this is a dict lookup after the first compile and a
        # self-referential binding ends up at the same cached profile.
        return self.target_registry.resolve(self.changeset_name)


@dataclass(frozen=True, eq=False)
class ChangesetProfile:
    """Immutable description of one compiled changeset.

    Profiles compare by identity: a registry publishes exactly one per changeset name.

    Attributes:
        name: The changeset name as registered (e.g. "create_user").
        model: The base model class the changeset scopes.
        qualified_name: Diagnostic name, e.g. "User.Changesets.CreateUser".
        param_key: Key under which submissions may be namespaced, e.g. "user".
        permitted: Declared keys in declaration order, mapped to True when optional.
        nested_bindings: Association name to nested binding.
        options: Strict mode and ignored keys.
        validators: Validation hooks run before persisting.
    """

    name: str
    model: type
    qualified_name: str
    param_key: str
    permitted: Mapping[str, bool]
    nested_bindings: Mapping[str, NestedBinding]
    options: ChangesetOptions
    validators: tuple[Validator, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "permitted", MappingProxyType(dict(self.permitted)))
        object.__setattr__(self, "nested_bindings", MappingProxyType(dict(self.nested_bindings)))

    @property
    def required_keys(self) -> tuple[str, ...]:
        return tuple(key for key, optional in self.permitted.items() if not optional)

    @property
    def optional_keys(self) -> tuple[str, ...]:
        return tuple(key for key, optional in self.permitted.items() if optional)

    @property
    def strict(self) -> bool:
        return self.options.strict

    def __repr__(self) -> str:
        return f"<ChangesetProfile {self.qualified_name} permitted={list(self.permitted)}>"
