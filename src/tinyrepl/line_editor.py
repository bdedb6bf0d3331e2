"""
Raw-TTY single-line editor with:
- Cursor motion (left/right, home/end), insert, backspace, forward-delete
- Bounded command history recall (arrow up/down) over fixed-size slots
- Minimal ANSI redraw: only the changed tail of the line is rewritten

Design guarantees:
- Input is a sequence of 8-bit code units, one per keystroke read.
- History is an explicit HistoryStore owned by the caller, the editor keeps
  no module-level state.
- The terminal mode is restored on every exit path (commit, end of input,
  exceptions) via the RawTTY context manager.
- Single-threaded, blocking reads. No asyncio.

Example:
    history = HistoryStore(size=10, capacity=2048)
    index = 0
    while True:
        os.write(1, b"js> ")
        index = edit_line(history, index, 0, 1)
        command = history[index].text
"""

from dataclasses import dataclass
import logging
import os
from typing import Optional

from tinyrepl.errors import TerminalModeError

__all__ = [
    "RAW_MODE_SUPPORTED", "AnsiRenderer", "EditSession", "HistoryStore",
    "Key", "KeyEvent", "LineBuffer", "RawTTY", "byte_values", "decode_key",
    "edit_line",
]

logger = logging.getLogger(__name__)

# Platform capability flag: without termios the raw mode switch is a no-op
# and the host terminal's own line discipline applies.
RAW_MODE_SUPPORTED = os.name == "posix"

if RAW_MODE_SUPPORTED:
    import termios
    import tty

READ_SIZE = 4

# =============================================================================
# Keys / Events
# =============================================================================

class Key:
    COMMIT = "commit"
    BACKSPACE = "backspace"
    DELETE = "delete"

    LEFT = "left"
    RIGHT = "right"
    OLDER = "older"
    NEWER = "newer"
    HOME = "home"
    END = "end"

    CHAR = "char"
    UNRECOGNIZED = "unrecognized"


@dataclass(frozen=True)
class KeyEvent:
    kind: str
    data: bytes = b""  # raw bytes for Key.CHAR (one byte) and Key.UNRECOGNIZED

    @property
    def byte(self) -> int:
        return self.data[0]


# =============================================================================
# Raw TTY
# =============================================================================

class RawTTY:
    """Context manager to put a terminal fd into raw mode and restore it.

    A no-op when RAW_MODE_SUPPORTED is false or the fd is not a terminal;
    `active` tells which case applies.
    """
    def __init__(self, fd: int):
        self.fd = fd
        self._old = None

    @property
    def active(self) -> bool:
        return self._old is not None

    def __enter__(self):
        if not RAW_MODE_SUPPORTED or not os.isatty(self.fd):
            logger.debug("raw mode unavailable for fd %d, leaving mode as is",
                         self.fd)
            return self
        try:
            self._old = termios.tcgetattr(self.fd)
            tty.setraw(self.fd, when=termios.TCSADRAIN)
        except termios.error as e:
            self._restore()
            raise TerminalModeError(f"cannot enter raw mode: {e}") from e
        return self

    def __exit__(self, exc_type, exc, tb):
        self._restore()

    def _restore(self) -> None:
        if self._old is None:
            return
        old, self._old = self._old, None
        try:
            termios.tcsetattr(self.fd, termios.TCSADRAIN, old)
        except termios.error as e:
            raise TerminalModeError(f"cannot restore terminal mode: {e}") from e


# =============================================================================
# Keyboard decoding (raw bytes -> KeyEvent)
# =============================================================================

ESC = 0x1B

_CSI_KEYS = {
    ord("A"): Key.OLDER,
    ord("B"): Key.NEWER,
    ord("C"): Key.RIGHT,
    ord("D"): Key.LEFT,
    72: Key.HOME,
    70: Key.END,
    51: Key.DELETE,  # "3"; the trailing "~" is not checked
}

def decode_key(data: bytes) -> KeyEvent:
    """Classify the bytes of a single read (at most READ_SIZE) as one key.

    Nothing is buffered between calls: an escape sequence split across two
    reads decodes as Key.UNRECOGNIZED.
    """
    b = data[0]

    if b in (10, 13):
        return KeyEvent(Key.COMMIT)

    if b in (8, 127):
        return KeyEvent(Key.BACKSPACE)

    if b == ESC:
        if len(data) < 3 or data[1] != ord("["):
            logger.debug("incomplete escape sequence: %s", byte_values(data))
            return KeyEvent(Key.UNRECOGNIZED, bytes(data))
        kind = _CSI_KEYS.get(data[2])
        if kind is None:
            logger.warning("unrecognized escape sequence: <<%s>>",
                           byte_values(data))
            return KeyEvent(Key.UNRECOGNIZED, bytes(data))
        return KeyEvent(kind)

    return KeyEvent(Key.CHAR, bytes(data[:1]))

def byte_values(data: bytes) -> str:
    return " ".join(str(b) for b in data)


# =============================================================================
# Line buffer
# =============================================================================

class LineBuffer:
    """Capacity-bounded byte buffer with a cursor.

    Usable length is capacity - 1. Invariant: 0 <= cursor <= len(self).
    """
    def __init__(self, capacity: int):
        if capacity < 2:
            raise ValueError(f"line capacity must be at least 2, got {capacity}")
        self.capacity = capacity
        self.content = bytearray()
        self._cursor = 0

    def __len__(self) -> int:
        return len(self.content)

    def __repr__(self) -> str:
        return f"LineBuffer({bytes(self.content)!r}, cursor={self._cursor})"

    @property
    def text(self) -> bytes:
        return bytes(self.content)

    @property
    def cursor(self) -> int:
        return self._cursor

    @cursor.setter
    def cursor(self, value: int) -> None:
        self._cursor = min(max(value, 0), len(self.content))

    @property
    def full(self) -> bool:
        return len(self.content) >= self.capacity - 1

    def clear(self) -> None:
        self.content.clear()
        self._cursor = 0

    def insert(self, byte: int) -> bool:
        if self.full:
            return False
        self.content.insert(self._cursor, byte)
        self._cursor += 1
        return True

    def backspace(self) -> bool:
        if self._cursor <= 0:
            return False
        del self.content[self._cursor - 1]
        self._cursor -= 1
        return True

    def delete(self) -> bool:
        if self._cursor >= len(self.content):
            return False
        del self.content[self._cursor]
        return True

    def move_left(self) -> bool:
        if self._cursor > 0:
            self._cursor -= 1
            return True
        return False

    def move_right(self) -> bool:
        if self._cursor < len(self.content):
            self._cursor += 1
            return True
        return False

    def home(self) -> None:
        self._cursor = 0

    def end(self) -> None:
        self._cursor = len(self.content)


# =============================================================================
# History
# =============================================================================

class HistoryStore:
    """Fixed number of LineBuffer slots plus the index of the live one.

    Slot 0 is the line being composed, higher indices are older lines.
    """
    def __init__(self, size: int = 10, capacity: int = 2048):
        if size < 1:
            raise ValueError(f"history size must be at least 1, got {size}")
        self.slots = [LineBuffer(capacity) for _ in range(size)]
        self.current_index = 0

    def __len__(self) -> int:
        return len(self.slots)

    def __getitem__(self, index: int) -> LineBuffer:
        return self.slots[index]

    @property
    def current(self) -> LineBuffer:
        return self.slots[self.current_index]

    def select(self, index: int) -> LineBuffer:
        if not 0 <= index < len(self.slots):
            raise IndexError(f"history index {index} out of range "
                             f"0..{len(self.slots) - 1}")
        self.current_index = index
        return self.current

    def older(self) -> bool:
        if self.current_index >= len(self.slots) - 1:
            return False
        self._switch(self.current_index + 1)
        return True

    def newer(self) -> bool:
        if self.current_index <= 0:
            return False
        self._switch(self.current_index - 1)
        return True

    def _switch(self, index: int) -> None:
        cursor = self.current.cursor
        self.current_index = index
        line = self.current
        # max(old cursor, new length); the LineBuffer clamps it to the length
        line.cursor = max(cursor, len(line))


# =============================================================================
# ANSI renderer (single line, relative cursor motion only)
# =============================================================================

CSI = b"\x1b["

class AnsiRenderer:
    """
    Writes the escape sequences that keep the visible line in step with a
    LineBuffer. The real cursor is always left at the buffer's cursor.
    """

    def __init__(self, fd: int):
        self.fd = fd

    def _write(self, data: bytes) -> None:
        view = memoryview(data)
        while view:
            written = os.write(self.fd, view)
            view = view[written:]

    def move_left(self, n: int) -> None:
        if n > 0:
            self._write(CSI + b"%dD" % n)

    def move_right(self, n: int) -> None:
        if n > 0:
            self._write(CSI + b"%dC" % n)

    def erase_to_end(self) -> None:
        self._write(CSI + b"K")

    def print_tail(self, line: LineBuffer, start: int) -> None:
        """Write line[start:] and rewind to the line's cursor."""
        tail = line.content[start:]
        if tail:
            self._write(bytes(tail))
        self.move_left(len(line) - line.cursor)

    # -- per-event updates ---------------------------------------------------

    def inserted(self, line: LineBuffer) -> None:
        self.print_tail(line, line.cursor - 1)

    def backspaced(self, line: LineBuffer) -> None:
        self.move_left(1)
        self.erase_to_end()
        self.print_tail(line, line.cursor)

    def deleted(self, line: LineBuffer) -> None:
        self.erase_to_end()
        self.print_tail(line, line.cursor)

    def switched(self, old_cursor: int, line: LineBuffer) -> None:
        self.move_left(old_cursor)
        self.erase_to_end()
        self.print_tail(line, 0)

    def committed(self) -> None:
        self._write(b"\r\n")


# =============================================================================
# Session (core loop)
# =============================================================================

class EditSession:
    """
    One edit of one line: raw mode, history slots and renderer together.

    The history's current slot is the only one mutated; the renderer keeps
    the screen cursor equal to that slot's cursor after every event.
    """

    def __init__(
        self,
        history: HistoryStore,
        input_fd: int,
        output_fd: int,
        renderer: Optional[AnsiRenderer] = None,
    ):
        self.history = history
        self.input_fd = input_fd
        self._renderer = renderer or AnsiRenderer(output_fd)
        self.committed = False

    def read_key(self) -> KeyEvent:
        data = os.read(self.input_fd, READ_SIZE)
        if not data:
            raise EOFError("end of input while editing line")
        return decode_key(data)

    def handle(self, ev: KeyEvent) -> None:
        history = self.history
        line = history.current
        r = self._renderer
        k = ev.kind

        if k == Key.COMMIT:
            r.committed()
            self.committed = True

        elif k == Key.CHAR:
            if line.insert(ev.byte):
                r.inserted(line)

        elif k == Key.BACKSPACE:
            if line.backspace():
                r.backspaced(line)

        elif k == Key.DELETE:
            if line.delete():
                r.deleted(line)

        elif k == Key.LEFT:
            if line.move_left():
                r.move_left(1)

        elif k == Key.RIGHT:
            if line.move_right():
                r.move_right(1)

        elif k == Key.HOME:
            r.move_left(line.cursor)
            line.home()

        elif k == Key.END:
            r.move_right(len(line) - line.cursor)
            line.end()

        elif k == Key.OLDER:
            if history.older():
                r.switched(line.cursor, history.current)

        elif k == Key.NEWER:
            if history.newer():
                r.switched(line.cursor, history.current)

        # Key.UNRECOGNIZED was already reported by decode_key

    def run(self, start_index: int) -> int:
        """Edit until Enter; return the index of the slot holding the line."""
        self.history.select(start_index).clear()
        self.committed = False
        with RawTTY(self.input_fd):
            while not self.committed:
                self.handle(self.read_key())
        return self.history.current_index


def edit_line(
    history: HistoryStore, start_index: int, input_fd: int, output_fd: int
) -> int:
    """
    Block until the user presses Enter and return the history index whose
    slot holds the submitted line.

    The slot at start_index is cleared first, so passing back the index just
    returned overwrites the previous command unless the user navigated away.
    """
    return EditSession(history, input_fd, output_fd).run(start_index)
