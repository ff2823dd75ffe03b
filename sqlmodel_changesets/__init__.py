"""Named, parameter-scoped changesets for SQLModel models."""

from sqlmodel_changesets.changeset import Changeset, ChangesetInstanceFactory, ChangesetState
from sqlmodel_changesets.config import ChangesetConfig
from sqlmodel_changesets.core.attribute_filter import filter_attributes
from sqlmodel_changesets.core.compiler import ChangesetBuilder
from sqlmodel_changesets.core.logging import setup_logging
from sqlmodel_changesets.core.profile import ChangesetOptions, ChangesetProfile, NestedAttributesOptions, NestedBinding
from sqlmodel_changesets.core.registry import ChangesetRegistry, registry_for
from sqlmodel_changesets.exceptions import (
    ChangesetError,
    ChangesetInvalid,
    ChangesetPersistError,
    MissingParameters,
    MissingParametersError,
    NestedAttributesError,
    NestedRecordNotFoundError,
    StrictParametersError,
    TooManyRecordsError,
    UnknownChangeset,
)
from sqlmodel_changesets.mixin import ChangesetMixin

setup_logging()

__all__ = [
    "Changeset",
    "ChangesetBuilder",
    "ChangesetConfig",
    "ChangesetError",
    "ChangesetInstanceFactory",
    "ChangesetInvalid",
    "ChangesetMixin",
    "ChangesetOptions",
    "ChangesetPersistError",
    "ChangesetProfile",
    "ChangesetRegistry",
    "ChangesetState",
    "MissingParameters",
    "MissingParametersError",
    "NestedAttributesError",
    "NestedAttributesOptions",
    "NestedBinding",
    "NestedRecordNotFoundError",
    "StrictParametersError",
    "TooManyRecordsError",
    "UnknownChangeset",
    "filter_attributes",
    "registry_for",
    "setup_logging",
]
