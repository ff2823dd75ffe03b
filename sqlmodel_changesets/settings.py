import os

from dotenv import load_dotenv

# Load .env file variables into environment
load_dotenv(verbose=True)

DEFAULT_IGNORED_ATTRIBUTES = ("csrf_token", "authenticity_token", "_method")

TRUE_STRINGS = ("1", "true", "yes", "on")


class Settings:
    """Changeset configuration settings loaded from environment variables."""

    # --- Changeset Settings ---
    def get_strict_mode(self) -> bool:
        """Returns True if changesets reject unexpected parameters by default."""
        value = os.getenv("CHANGESETS_STRICT_MODE")
        if value is None:
            return False
        return value.strip().lower() in TRUE_STRINGS

    def get_ignored_attributes(self) -> tuple[str, ...]:
        """Returns the keys ignored by strict mode, e.g. form helper fields."""
        value = os.getenv("CHANGESETS_IGNORED_ATTRIBUTES")
        if value is None:
            return DEFAULT_IGNORED_ATTRIBUTES
        return tuple(key.strip() for key in value.split(",") if key.strip())

    # --- Logging Settings ---
    def get_log_level(self, default: str = "INFO") -> str:
        """Gets the configured log level, defaulting if not set."""
        return os.getenv("LOG_LEVEL", default).upper()
