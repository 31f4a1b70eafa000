"""Host platform detection and exercise constraints.

Constraint syntax (declared per exercise in the curriculum):
- "os:<name>"   host OS must match (linux, darwin, windows)
- "arch:<name>" host CPU must match, or a qemu user-mode emulator for that
                architecture must be available on a Linux host

Constraints are evaluated once when the registry is loaded; the result is
cached on the Exercise record.
"""

from __future__ import annotations

import os
import platform
import shutil
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from oscamp.core.registry import Exercise

OS_NAMES = {
    "linux": "Linux",
    "darwin": "macOS",
    "windows": "Windows",
}

_ARCH_ALIASES = {
    "amd64": "x86_64",
    "x64": "x86_64",
    "arm64": "aarch64",
    "riscv64gc": "riscv64",
}


class ConstraintSyntaxError(ValueError):
    """Raised for a constraint string that is not "os:..." or "arch:..."."""


def normalize_arch(name: str) -> str:
    """Map platform/triple spellings to one architecture name."""
    name = name.strip().lower()
    return _ARCH_ALIASES.get(name, name)


def target_arch(target: str) -> str:
    """Architecture part of a target triple (riscv64gc-unknown-linux-gnu -> riscv64)."""
    return normalize_arch(target.split("-", 1)[0])


def emulator_binary(arch: str) -> str:
    return f"qemu-{arch}"


@dataclass(frozen=True)
class HostInfo:
    """The machine oscamp runs on."""

    system: str
    machine: str
    emulators: frozenset[str] = field(default_factory=frozenset)

    @classmethod
    def detect(cls, candidate_archs: tuple[str, ...] = ("riscv64", "aarch64", "x86_64")) -> "HostInfo":
        """Inspect the current host.

        Args:
            candidate_archs: Architectures to probe for a qemu user-mode emulator.
        """
        machine = normalize_arch(platform.machine())
        emulators = frozenset(
            arch
            for arch in candidate_archs
            if arch != machine and shutil.which(emulator_binary(arch))
        )
        return cls(
            system=platform.system().lower(),
            machine=machine,
            emulators=emulators,
        )

    def can_run_arch(self, arch: str) -> bool:
        arch = normalize_arch(arch)
        if arch == self.machine:
            return True
        return self.system == "linux" and arch in self.emulators

    def needs_emulation(self, arch: str) -> bool:
        return normalize_arch(arch) != self.machine


def parse_constraint(constraint: str) -> tuple[str, str]:
    """Split "kind:value" and validate the kind."""
    kind, sep, value = constraint.partition(":")
    kind = kind.strip().lower()
    value = value.strip().lower()
    if not sep or kind not in ("os", "arch") or not value:
        raise ConstraintSyntaxError(
            f"invalid platform constraint '{constraint}' (expected 'os:<name>' or 'arch:<name>')"
        )
    return kind, value


def evaluate(requires: tuple[str, ...], host: HostInfo) -> tuple[bool, str | None]:
    """Check constraints against the host.

    Returns:
        (runnable, skip_reason). skip_reason is None when runnable.
    """
    for constraint in requires:
        kind, value = parse_constraint(constraint)
        if kind == "os" and value != host.system:
            wanted = OS_NAMES.get(value, value)
            return False, f"requires {wanted} (host: {host.system})"
        if kind == "arch" and not host.can_run_arch(value):
            if host.system != "linux":
                return False, f"requires {value} (host: {host.system}/{host.machine})"
            return False, f"requires {value} or {emulator_binary(normalize_arch(value))} on PATH"
    return True, None


def sysroot_for(arch: str, sysroots: dict[str, str]) -> str:
    """Root filesystem handed to qemu via -L.

    $<ARCH>_SYSROOT wins over config, which wins over /usr/<arch>-linux-gnu.
    """
    env_value = os.environ.get(f"{arch.upper()}_SYSROOT")
    if env_value:
        return env_value
    return sysroots.get(arch, f"/usr/{arch}-linux-gnu")


def runner_env(exercise: "Exercise", host: HostInfo, sysroots: dict[str, str]) -> dict[str, str]:
    """Extra environment for running a cross-compiled exercise under qemu."""
    if not exercise.target:
        return {}
    arch = target_arch(exercise.target)
    if not host.needs_emulation(arch):
        return {}
    var = "CARGO_TARGET_" + exercise.target.upper().replace("-", "_") + "_RUNNER"
    return {var: f"{emulator_binary(arch)} -L {sysroot_for(arch, sysroots)}"}
