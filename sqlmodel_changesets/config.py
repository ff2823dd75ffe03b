# Immutable changeset configuration passed into registries.

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from sqlmodel_changesets.settings import DEFAULT_IGNORED_ATTRIBUTES, Settings


class ChangesetConfig(BaseModel):
    """Process-level defaults applied when a changeset is registered.

    Attributes:
        default_strict_mode: Whether changesets reject parameters that are neither
            expected nor permitted, unless a changeset overrides `strict`.
        default_ignore_keys: Keys never reported as unexpected in strict mode,
            unless a changeset overrides `ignore`.
    """

    model_config = ConfigDict(frozen=True)

    default_strict_mode: bool = False
    default_ignore_keys: tuple[str, ...] = Field(default=DEFAULT_IGNORED_ATTRIBUTES)

    @field_validator("default_ignore_keys", mode="before")
    @classmethod
    def _coerce_keys(cls, value):
        return tuple(str(key) for key in value)

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "ChangesetConfig":
        """Build the configuration from environment-backed settings."""
        settings = settings or Settings()
        return cls(
            default_strict_mode=settings.get_strict_mode(),
            default_ignore_keys=settings.get_ignored_attributes(),
        )
