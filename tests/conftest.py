"""Pytest configuration for phased testing.

Tests are organized by phase (f1, f2, f3, f4):
- f1: registry, platform constraints, configuration
- f2: test runner, progress tracking
- f3: file watching, navigation
- f4: session loop, rendering, CLI

Future phase tests are automatically skipped.
"""

from pathlib import Path
from typing import Any

import pytest
import structlog

from oscamp.config.app_config import clear_config_cache
from oscamp.core.platform import HostInfo
from oscamp.core.registry import Registry, build_registry

# Current implementation phase
CURRENT_PHASE = 4


def pytest_collection_modifyitems(config, items):
    """Skip tests from phases that haven't been implemented yet."""
    for item in items:
        # Extract phase from path (tests/f2/... -> 2)
        parts = Path(str(item.fspath)).parts
        for part in parts:
            if part.startswith("f") and part[1:].isdigit():
                test_phase = int(part[1:])
                if test_phase > CURRENT_PHASE:
                    item.add_marker(
                        pytest.mark.skip(
                            reason=f"Phase F{test_phase} not yet implemented (current: F{CURRENT_PHASE})"
                        )
                    )
                break


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Never read an oscamp.yaml from the developer's working directory.

    Also resets structlog, since CLI tests bind it to CliRunner's streams.
    """
    monkeypatch.setenv("OSCAMP_CONFIG", str(tmp_path / "no-such-config.yaml"))
    clear_config_cache()
    yield
    clear_config_cache()
    structlog.reset_defaults()


@pytest.fixture
def linux_host() -> HostInfo:
    """x86_64 Linux host with a riscv64 emulator installed."""
    return HostInfo(system="linux", machine="x86_64", emulators=frozenset({"riscv64"}))


@pytest.fixture
def mac_host() -> HostInfo:
    return HostInfo(system="darwin", machine="aarch64")


def exercise_entry(package: str, module: str, **extra: Any) -> dict[str, Any]:
    """One [[exercise]] table."""
    entry = {
        "name": package.replace("_", " ").title(),
        "package": package,
        "path": f"exercises/{module}/{package}/src/lib.rs",
        "module": module,
        "description": f"Exercise {package}",
        "hint": f"Hint for {package}",
    }
    entry.update(extra)
    return entry


@pytest.fixture
def curriculum_data() -> dict[str, Any]:
    """Three exercises in two modules; the last one needs riscv64."""
    return {
        "module": [
            {"id": "01_basics", "name": "Basics"},
            {"id": "02_switch", "name": "Context Switch"},
        ],
        "exercise": [
            exercise_entry("thread_spawn", "01_basics"),
            exercise_entry("mutex_counter", "01_basics"),
            exercise_entry(
                "stack_coroutine",
                "02_switch",
                requires=["os:linux", "arch:riscv64"],
                target="riscv64gc-unknown-linux-gnu",
            ),
        ],
    }


@pytest.fixture
def registry(curriculum_data, linux_host) -> Registry:
    return build_registry(curriculum_data, linux_host)


@pytest.fixture
def plain_registry(linux_host) -> Registry:
    """Three runnable exercises, one module."""
    return build_registry(
        {
            "exercise": [
                exercise_entry("alpha", "01_basics"),
                exercise_entry("beta", "01_basics"),
                exercise_entry("gamma", "01_basics"),
            ]
        },
        linux_host,
    )


@pytest.fixture
def curriculum_file(tmp_path) -> Path:
    """Curriculum in the original TOML format, with exercise files on disk."""
    content = '''
[[module]]
id = "01_basics"
name = "Basics"

[[exercise]]
name = "Thread spawn"
package = "thread_spawn"
path = "exercises/01_basics/01_thread_spawn/src/lib.rs"
module = "01_basics"
description = "Create threads"
hint = "Use std::thread::spawn"

[[exercise]]
name = "Mutex counter"
package = "mutex_counter"
path = "exercises/01_basics/02_mutex_counter/src/lib.rs"
module = "01_basics"
description = "Share state"
hint = "Arc<Mutex<T>>"

[[exercise]]
name = "Stack coroutine"
package = "stack_coroutine"
path = "exercises/02_switch/01_stack_coroutine/src/lib.rs"
module = "02_switch"
description = "Switch stacks"
hint = "Save callee-saved registers"
requires = ["os:linux", "arch:riscv64"]
target = "riscv64gc-unknown-linux-gnu"
'''
    path = tmp_path / "exercises.toml"
    path.write_text(content, encoding="utf-8")
    for rel in (
        "exercises/01_basics/01_thread_spawn/src",
        "exercises/01_basics/02_mutex_counter/src",
        "exercises/02_switch/01_stack_coroutine/src",
    ):
        (tmp_path / rel).mkdir(parents=True)
        (tmp_path / rel / "lib.rs").write_text("// todo\n", encoding="utf-8")
    return path


@pytest.fixture
def make_entry():
    """Factory for [[exercise]] tables."""
    return exercise_entry
