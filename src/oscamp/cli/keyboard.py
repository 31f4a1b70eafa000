"""Keyboard input for the interactive session.

A daemon thread reads single keys with readchar and posts CommandIssued
events on the session queue. It never touches session state.
"""

from __future__ import annotations

import queue
import threading
from collections.abc import Callable

import readchar
import structlog

from oscamp.core.session import Command, CommandIssued

logger = structlog.get_logger(__name__)

KEYMAP: dict[str, Command] = {
    "h": Command.TOGGLE_HINT,
    "l": Command.TOGGLE_LIST,
    "n": Command.NEXT,
    "p": Command.PREVIOUS,
    "r": Command.RERUN,
    readchar.key.ENTER: Command.RERUN,
    readchar.key.CR: Command.RERUN,
    readchar.key.LF: Command.RERUN,
    "q": Command.QUIT,
    readchar.key.ESC: Command.QUIT,
    readchar.key.CTRL_C: Command.QUIT,
}


def command_for_key(key: str) -> Command | None:
    """Map a key (as returned by readchar) to a session command."""
    if key in KEYMAP:
        return KEYMAP[key]
    return KEYMAP.get(key.lower()) if len(key) == 1 else None


class KeyboardReader:
    """Background reader turning key presses into session events."""

    def __init__(
        self,
        sink: queue.Queue,
        read_key: Callable[[], str] = readchar.readkey,
    ):
        self.sink = sink
        self._read_key = read_key
        self._thread = threading.Thread(target=self._loop, name="oscamp-keys", daemon=True)

    def start(self) -> None:
        self._thread.start()

    def _loop(self) -> None:
        while True:
            try:
                key = self._read_key()
            except KeyboardInterrupt:
                self.sink.put(CommandIssued(Command.QUIT))
                return
            except EOFError:
                logger.debug("keyboard_eof")
                self.sink.put(CommandIssued(Command.QUIT))
                return

            command = command_for_key(key)
            if command is None:
                continue
            self.sink.put(CommandIssued(command))
            if command == Command.QUIT:
                return
