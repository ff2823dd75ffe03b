# Per-model registry of changeset definitions and their compiled profiles.

import logging
import threading
from types import SimpleNamespace
from typing import Callable, Dict, Iterable, Optional

from sqlmodel_changesets.config import ChangesetConfig
from sqlmodel_changesets.core.compiler import BuildFunc, ChangesetDefinition, compile_changeset
from sqlmodel_changesets.core.profile import ChangesetOptions, ChangesetProfile
from sqlmodel_changesets.exceptions import ChangesetError, UnknownChangeset
from sqlmodel_changesets.reflection import camelize

logger = logging.getLogger(__name__)

# One lock for every registry, so compiles that nest across models cannot deadlock.
# Re-entrant so a compile can resolve the changesets it nests.
_compile_lock = threading.RLock()


class ChangesetRegistry:
    """Stores changeset definitions for one model and compiles them on first use.

    Compilation uses double-checked locking: the profile cache is read without
    synchronization, and a miss takes the process-wide compile lock, re-checks,
    then compiles and publishes. At most one profile is ever published per name.

    Attributes:
        model: The model class the changesets scope.
        config: Defaults for strict mode and ignored keys.
        Changesets: Namespace of compiled profiles by CamelCase name, for introspection.
    """

    def __init__(self, model: type, config: Optional[ChangesetConfig] = None):
        self.model = model
        self.config = config or ChangesetConfig.from_settings()
        self.Changesets = SimpleNamespace()
        self._definitions: Dict[str, ChangesetDefinition] = {}
        self._profiles: Dict[str, ChangesetProfile] = {}
        self._compiling: set[str] = set()
        self._lock = _compile_lock

    def __repr__(self) -> str:
        return f"<ChangesetRegistry {self.model.__name__} {sorted(self._definitions)}>"

    def __contains__(self, name: object) -> bool:
        return str(name) in self._definitions

    def names(self) -> list[str]:
        return list(self._definitions)

    def is_compiled(self, name: str) -> bool:
        return str(name) in self._profiles

    def register(
        self,
        name: str,
        build: BuildFunc,
        strict: Optional[bool] = None,
        ignore: Optional[Iterable[str]] = None,
    ) -> ChangesetDefinition:
        """Register (or replace) a changeset definition.

        Args:
            name: The changeset name.
            build: Called with a `ChangesetBuilder` when the changeset is first used.
            strict: Reject unexpected parameters. Defaults to `config.default_strict_mode`.
            ignore: Keys strict mode never reports. Defaults to `config.default_ignore_keys`.
        """
        key = str(name)
        options = ChangesetOptions(
            strict=self.config.default_strict_mode if strict is None else strict,
            ignore=tuple(self.config.default_ignore_keys if ignore is None else (str(k) for k in ignore)),
        )
        definition = ChangesetDefinition(name=key, options=options, build=build)

        with self._lock:
            if key in self._profiles:
                logger.warning(
                    f"Changeset '{key}' on {self.model.__name__} was re-registered after it was compiled; "
                    f"the cached profile stays in use until invalidate('{key}') is called."
                )
            self._definitions[key] = definition

        return definition

    def changeset(
        self, name: str, strict: Optional[bool] = None, ignore: Optional[Iterable[str]] = None
    ) -> Callable[[BuildFunc], BuildFunc]:
        """Decorator form of `register`."""

        def decorator(build: BuildFunc) -> BuildFunc:
            self.register(name, build, strict=strict, ignore=ignore)
            return build

        return decorator

    def resolve(self, name: str) -> ChangesetProfile:
        """Return the compiled profile for `name`, compiling it on first use.

        Raises:
            UnknownChangeset: If `name` was never registered.
            ChangesetError: If the changeset's build function resolves itself.
        """
        key = str(name)
        if key not in self._definitions:
            raise UnknownChangeset(self.model.__name__, key)

        profile = self._profiles.get(key)
        if profile is not None:
            return profile

        with self._lock:
            # Another thread may have compiled it while we waited on the lock.
            profile = self._profiles.get(key)
            if profile is not None:
                return profile
            if key in self._compiling:
                raise ChangesetError(
                    f"Changeset '{key}' on {self.model.__name__} was resolved while it was being compiled",
                    changeset_name=key,
                )
            return self._compile(key)

    def ensure_compiled(self, name: str) -> None:
        """Compile `name` now unless this thread is already compiling it.

        Used for nested bindings: a cycle back to a changeset under construction is
        left for the binding to resolve lazily once that compile has published.
        """
        key = str(name)
        if key not in self._definitions:
            raise UnknownChangeset(self.model.__name__, key)
        if key in self._profiles:
            return

        with self._lock:
            if key in self._compiling:
                logger.debug(f"Deferring resolution of '{key}' on {self.model.__name__}: compile in progress")
                return
            self.resolve(key)

    def invalidate(self, name: Optional[str] = None) -> None:
        """Drop cached profiles so the current definitions compile on next use."""
        with self._lock:
            keys = [str(name)] if name is not None else list(self._profiles)
            for key in keys:
                if self._profiles.pop(key, None) is not None:
                    delattr(self.Changesets, camelize(key))
                    logger.debug(f"Invalidated changeset '{key}' on {self.model.__name__}")

    def lookup_qualified(self, qualified_name: str) -> ChangesetProfile:
        """Find a compiled profile by its diagnostic name, e.g. "User.Changesets.CreateUser"."""
        for profile in list(self._profiles.values()):
            if profile.qualified_name == qualified_name:
                return profile
        raise UnknownChangeset(self.model.__name__, qualified_name)

    def _compile(self, key: str) -> ChangesetProfile:
        definition = self._definitions[key]
        self._compiling.add(key)
        try:
            profile = compile_changeset(self, definition)
        finally:
            self._compiling.discard(key)

        self._profiles[key] = profile
        setattr(self.Changesets, camelize(key), profile)
        logger.info(f"Changeset {profile.qualified_name} compiled")
        return profile


# --- Registry of registries --- #

_registries: Dict[type, ChangesetRegistry] = {}
_registries_lock = threading.Lock()


def registry_for(model: type, config: Optional[ChangesetConfig] = None) -> ChangesetRegistry:
    """Return the registry for `model`, creating it on first use.

    Args:
        model: The model class.
        config: Configuration for a new registry. Defaults to `ChangesetConfig.from_settings()`.

    Raises:
        ValueError: If `config` conflicts with the configuration of an existing registry.
    """
    registry = _registries.get(model)
    if registry is None:
        with _registries_lock:
            registry = _registries.get(model)
            if registry is None:
                registry = ChangesetRegistry(model, config=config)
                _registries[model] = registry
                return registry

    if config is not None and config != registry.config:
        raise ValueError(f"{model.__name__} already has a changeset registry with a different configuration")
    return registry
