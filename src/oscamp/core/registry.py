"""Exercise registry.

Responsibilities:
- Load the curriculum (exercises.toml or exercises.yaml)
- Validate it: unique ids and packages, contiguous modules, known constraints
- Evaluate platform constraints once and cache the result per exercise
- Answer lookups by index, id or unique id prefix

The registry is immutable after load.

Curriculum format (TOML):

    [[module]]                  # optional, gives display names
    id = "01_concurrency_sync"
    name = "Concurrency & Sync"

    [[exercise]]
    name = "Thread spawn"
    package = "thread_spawn"
    path = "exercises/01_concurrency_sync/01_thread_spawn/src/lib.rs"
    module = "01_concurrency_sync"
    description = "Create threads and join them"
    hint = "..."
    requires = ["os:linux", "arch:riscv64"]     # optional
    target = "riscv64gc-unknown-linux-gnu"      # optional
"""

from __future__ import annotations

import tomllib
from collections.abc import Iterator, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import structlog
import yaml

from oscamp.core.platform import ConstraintSyntaxError, HostInfo, evaluate

logger = structlog.get_logger(__name__)

REQUIRED_KEYS = ("name", "package", "path", "module")


# =============================================================================
# ERRORS
# =============================================================================


class CurriculumError(Exception):
    """The curriculum file is missing or malformed. Fatal at startup."""

    pass


class RegistryLookupError(LookupError):
    """Raised when no exercise matches an identifier."""

    def __init__(self, identifier: str | int, message: str | None = None):
        self.identifier = identifier
        super().__init__(message or f"Exercise not found: {identifier}")


class AmbiguousExerciseIdError(RegistryLookupError):
    """Raised when an id prefix matches several exercises."""

    def __init__(self, prefix: str, candidates: list[str]):
        self.candidates = candidates
        super().__init__(
            prefix,
            f"Prefix '{prefix}' is ambiguous. Candidates:\n"
            + "\n".join(f"  - {c}" for c in candidates),
        )


# =============================================================================
# DATA CLASSES
# =============================================================================


@dataclass(frozen=True)
class Module:
    """An ordered group of exercises."""

    id: str
    name: str


@dataclass(frozen=True)
class Exercise:
    """One curriculum unit."""

    id: str
    name: str
    package: str
    path: str
    module: str
    description: str
    hint: str
    index: int
    requires: tuple[str, ...] = ()
    target: str | None = None
    runnable: bool = True
    skip_reason: str | None = None

    @property
    def watch_dir(self) -> Path:
        """Directory observed for edits to this exercise."""
        return Path(self.path).parent


class Registry:
    """Static, ordered catalogue of exercises grouped into modules."""

    def __init__(self, modules: Sequence[Module], exercises: Sequence[Exercise]):
        self._modules = tuple(modules)
        self._exercises = tuple(exercises)
        self._by_id = {ex.id: ex.index for ex in self._exercises}

    def __len__(self) -> int:
        return len(self._exercises)

    def __iter__(self) -> Iterator[Exercise]:
        return iter(self._exercises)

    def all_exercises(self) -> tuple[Exercise, ...]:
        return self._exercises

    def modules(self) -> tuple[Module, ...]:
        return self._modules

    def module(self, module_id: str) -> Module:
        for module in self._modules:
            if module.id == module_id:
                return module
        raise RegistryLookupError(module_id)

    def exercises_in(self, module_id: str) -> tuple[Exercise, ...]:
        return tuple(ex for ex in self._exercises if ex.module == module_id)

    def exercise_at(self, index: int) -> Exercise:
        if not 0 <= index < len(self._exercises):
            raise RegistryLookupError(index)
        return self._exercises[index]

    def index_of(self, identifier: str) -> int:
        try:
            return self._by_id[identifier]
        except KeyError:
            raise RegistryLookupError(identifier) from None

    def get(self, identifier: str) -> Exercise:
        return self._exercises[self.index_of(identifier)]

    def resolve(self, prefix: str) -> Exercise:
        """Resolve an id or unique id prefix to an exercise.

        Raises:
            RegistryLookupError: If nothing matches
            AmbiguousExerciseIdError: If several exercises match the prefix
        """
        if prefix in self._by_id:
            return self.get(prefix)

        matches = [ex.id for ex in self._exercises if ex.id.startswith(prefix)]
        if not matches:
            raise RegistryLookupError(prefix)
        if len(matches) > 1:
            raise AmbiguousExerciseIdError(prefix, matches)
        return self.get(matches[0])


# =============================================================================
# LOADING
# =============================================================================


def find_curriculum(candidates: Sequence[str | Path]) -> Path:
    """Return the first curriculum file that exists.

    Raises:
        CurriculumError: If none of the candidates exist
    """
    for candidate in candidates:
        path = Path(candidate)
        if path.is_file():
            return path
    tried = ", ".join(str(c) for c in candidates)
    raise CurriculumError(
        f"Could not find a curriculum file (tried: {tried}). "
        "Run oscamp from the project root directory."
    )


def _read_curriculum(path: Path) -> dict[str, Any]:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise CurriculumError(f"Cannot read {path}: {e}") from e

    try:
        if path.suffix in (".yaml", ".yml"):
            data = yaml.safe_load(text) or {}
        else:
            data = tomllib.loads(text)
    except (tomllib.TOMLDecodeError, yaml.YAMLError) as e:
        raise CurriculumError(f"{path} format error: {e}") from e

    if not isinstance(data, dict):
        raise CurriculumError(f"{path} must contain a mapping at top level")
    return data


def build_registry(
    data: dict[str, Any],
    host: HostInfo,
    base_dir: Path | None = None,
) -> Registry:
    """Validate raw curriculum data and build the registry.

    Args:
        data: Parsed curriculum with "exercise" (and optionally "module") lists
        host: Host used to evaluate platform constraints
        base_dir: Directory exercise paths are relative to (the curriculum
            file's directory); paths are kept as given when None

    Raises:
        CurriculumError: On any validation failure
    """
    entries = data.get("exercise") or []
    if not isinstance(entries, list) or not entries:
        raise CurriculumError("Curriculum defines no exercises")

    module_entries = data.get("module") or []
    if not isinstance(module_entries, list):
        raise CurriculumError("'module' must be a list of tables")

    module_names = {}
    for entry in module_entries:
        if not isinstance(entry, dict) or "id" not in entry:
            raise CurriculumError(f"Module entry without id: {entry!r}")
        module_names[str(entry["id"])] = str(entry.get("name", entry["id"]))

    modules: list[Module] = []
    exercises: list[Exercise] = []
    seen_ids: set[str] = set()
    seen_packages: set[str] = set()
    closed_modules: set[str] = set()

    for index, entry in enumerate(entries):
        if not isinstance(entry, dict):
            raise CurriculumError(f"Exercise #{index + 1} is not a table")
        missing = [key for key in REQUIRED_KEYS if not entry.get(key)]
        if missing:
            raise CurriculumError(
                f"Exercise #{index + 1} is missing: {', '.join(missing)}"
            )

        package = str(entry["package"])
        exercise_id = str(entry.get("id") or package)
        module_id = str(entry["module"])

        if exercise_id in seen_ids:
            raise CurriculumError(f"Duplicate exercise id: {exercise_id}")
        if package in seen_packages:
            raise CurriculumError(f"Duplicate package: {package}")
        seen_ids.add(exercise_id)
        seen_packages.add(package)

        # Flattened order must follow module order
        if not modules or modules[-1].id != module_id:
            if module_id in closed_modules:
                raise CurriculumError(
                    f"Module '{module_id}' is not contiguous (exercise {exercise_id})"
                )
            if modules:
                closed_modules.add(modules[-1].id)
            modules.append(Module(id=module_id, name=module_names.get(module_id, module_id)))

        requires = entry.get("requires") or []
        if isinstance(requires, str):
            requires = [requires]
        if not isinstance(requires, list) or not all(isinstance(r, str) for r in requires):
            raise CurriculumError(
                f"Exercise {exercise_id}: 'requires' must be a list of strings, got {requires!r}"
            )
        requires = tuple(requires)

        target = entry.get("target") or None
        if target is not None and not isinstance(target, str):
            raise CurriculumError(f"Exercise {exercise_id}: 'target' must be a string")

        path = str(entry["path"])
        if base_dir is not None:
            path = str(base_dir / path)
        try:
            runnable, skip_reason = evaluate(requires, host)
        except ConstraintSyntaxError as e:
            raise CurriculumError(f"Exercise {exercise_id}: {e}") from e

        exercises.append(
            Exercise(
                id=exercise_id,
                name=str(entry["name"]),
                package=package,
                path=path,
                module=module_id,
                description=str(entry.get("description", "")),
                hint=str(entry.get("hint", "")),
                index=index,
                requires=requires,
                target=target,
                runnable=runnable,
                skip_reason=skip_reason,
            )
        )

    logger.debug(
        "registry_built",
        exercises=len(exercises),
        modules=len(modules),
        skipped=sum(1 for ex in exercises if not ex.runnable),
    )
    return Registry(modules, exercises)


def load_registry(path: Path, host: HostInfo | None = None) -> Registry:
    """Load and validate a curriculum file.

    Exercise paths in the file are resolved against its directory, so
    ../exercises.toml works from a subdirectory of the project.
    """
    if host is None:
        host = HostInfo.detect()
    logger.debug("loading_curriculum", path=str(path))
    return build_registry(_read_curriculum(path), host, base_dir=path.parent)
