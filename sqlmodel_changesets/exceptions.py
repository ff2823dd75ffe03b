# Changeset Exceptions

from typing import Any, Iterable, Optional

from sqlalchemy.exc import SQLAlchemyError


class ChangesetError(Exception):
    """Base exception for all changeset errors."""

    def __init__(self, *args, changeset_name: Optional[str] = None, keys: Optional[Iterable[str]] = None):
        super().__init__(*args)
        self.changeset_name = changeset_name
        self.keys = list(keys) if keys is not None else []


class UnknownChangeset(ChangesetError):
    """Raised when requesting a changeset that was never registered on a model."""

    def __init__(self, model_name: str, name: str):
        super().__init__(f"Unknown changeset for {model_name}: {name}", changeset_name=name)
        self.model_name = model_name


class MissingParametersError(ChangesetError):
    """Raised when expected parameters are missing while assigning a changeset."""

    def __init__(self, changeset_name: str, keys: Iterable[str]):
        keys = list(keys)
        super().__init__(
            f"{changeset_name}: Expected parameters were missing: {', '.join(keys)}",
            changeset_name=changeset_name,
            keys=keys,
        )


# Shorter name kept for callers matching on the error taxonomy.
MissingParameters = MissingParametersError


class StrictParametersError(ChangesetError):
    """Raised when strict mode is enabled and unexpected parameters are provided."""

    def __init__(self, changeset_name: str, keys: Iterable[str]):
        keys = list(keys)
        super().__init__(
            f"{changeset_name}: Unexpected parameters passed to changeset: {', '.join(keys)}",
            changeset_name=changeset_name,
            keys=keys,
        )


class ChangesetInvalid(ChangesetError):
    """Raised by `save_or_raise` when the changeset's validations fail."""

    def __init__(self, changeset_name: str, errors: dict[str, list[str]]):
        self.errors = errors
        details = "; ".join(f"{field} {', '.join(messages)}" for field, messages in errors.items())
        super().__init__(f"{changeset_name}: Validation failed: {details}", changeset_name=changeset_name)


class ChangesetPersistError(ChangesetError):
    """Raised when the session fails to persist a changeset.

    Wraps the SQLAlchemy error so callers can match on a single changeset error type.
    """

    def __init__(self, message: str, changeset_name: str, original_error: SQLAlchemyError = None):
        """Initialize the exception.

        Args:
            message: A descriptive error message
            changeset_name: The qualified name of the changeset being saved
            original_error: The original SQLAlchemy error that was raised
        """
        super().__init__(message, changeset_name=changeset_name)
        self.original_error = original_error


class NestedAttributesError(ChangesetError):
    """Base exception for errors raised while accepting nested attributes."""

    def __init__(self, *args: Any, association: Optional[str] = None):
        super().__init__(*args)
        self.association = association


class TooManyRecordsError(NestedAttributesError):
    """Raised when a nested collection payload exceeds the configured `limit`."""

    pass


class NestedRecordNotFoundError(NestedAttributesError):
    """Raised when a nested payload references an id the parent does not own."""

    pass
