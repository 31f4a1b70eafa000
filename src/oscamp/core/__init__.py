"""Core exercise-runner logic.

Modules:
- registry: curriculum loading and lookup
- platform: host detection and platform constraints
- runner: test command execution
- progress: outcome tracking and optional persistence
- watcher: debounced file watching
- navigation: movement over the exercise list
- session: the event loop tying the above together
"""

__all__ = [
    "registry",
    "platform",
    "runner",
    "progress",
    "watcher",
    "navigation",
    "session",
]
