#!/usr/bin/env python3
#
# Usage
# ~~~~~
# tinyrepl repl [--engine package.module.ClassName]
# tinyrepl keys
#
# tinyrepl --log-level DEBUG repl --history-size 20 --line-capacity 256
#
# Configuration
# ~~~~~~~~~~~~~
# Every option may also be given through the environment:
#   TINYREPL_LOG_LEVEL, TINYREPL_LOG_FILE, TINYREPL_ENGINE,
#   TINYREPL_HISTORY_SIZE, TINYREPL_LINE_CAPACITY, TINYREPL_PROMPT
#
# Diagnostics go to --log-file when given. Without it they go to stderr,
# unless stderr is the terminal being edited, where they are discarded.
#
# Notes
# ~~~~~
# The engine is any class accepting a print callable, with an
# execute(command) method and a quit_requested attribute.
# It signals a bad command by raising tinyrepl.ScriptError.

import importlib
import logging
import os
import re
import signal
import sys
from typing import Callable, List, Protocol

import click

from tinyrepl.errors import EngineLoadError, ScriptError
from tinyrepl.line_editor import (
    READ_SIZE, HistoryStore, Key, RawTTY, byte_values, decode_key, edit_line)

__all__ = [
    "EchoEngine", "Repl", "ScriptEngine", "configure_logging",
    "install_signal_handlers", "load_engine", "show_keys", "main"]

logger = logging.getLogger(__name__)

HISTORY_SIZE = 10
LINE_CAPACITY = 2048
PROMPT = "js> "
DEFAULT_ENGINE = "tinyrepl.repl.EchoEngine"

BANNER = (
    "Interactive mode...\n"
    "Type quit(); to exit,\n"
    "or print(...); to print something,\n"
    "or dump() to dump the symbol table!")

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

# --------------------------------------------------------------------------- #
# Script engine: Interface and default Implementation

class ScriptEngine(Protocol):
    quit_requested: bool

    def execute(self, command: str) -> None:
        ...

class EchoEngine:
    """Stand-in engine: echoes commands, understands print(), quit(), dump()"""

    _PRINT_CALL = re.compile(r"^print\((.*)\)$")

    def __init__(self, output: Callable[[str], None]):
        self._output = output
        self.quit_requested = False
        self.executed: List[str] = []

    def execute(self, command: str) -> None:
        command = command.strip()
        if not command:
            return
        if command.startswith("throw "):
            raise ScriptError(command[len("throw "):].strip())
        self.executed.append(command)
        if command.rstrip(";") == "quit()":
            self.quit_requested = True
        elif command.rstrip(";") == "dump()":
            for executed in self.executed:
                self._output(f">  {executed}")
        else:
            match = self._PRINT_CALL.match(command.rstrip(";"))
            self._output(f"> {_unquote(match.group(1)) if match else command}")

def _unquote(text):
    text = text.strip()
    if len(text) >= 2 and text[0] == text[-1] and text[0] in "\"'":
        return text[1:-1]
    return text

def load_engine(path) -> type:
    """Resolve "package.module.ClassName" to the engine class"""

    module_name, _, class_name = path.rpartition(".")
    if not module_name:
        raise EngineLoadError(
            f'Engine "{path}" must be given as "package.module.ClassName"')
    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise EngineLoadError(f'Engine module "{module_name}": {e}') from e
    engine_class = getattr(module, class_name, None)
    if engine_class is None:
        raise EngineLoadError(
            f'Engine class "{class_name}" not found in "{module_name}"')
    logger.debug("engine %s loaded", path)
    return engine_class

# --------------------------------------------------------------------------- #
# Repl: prompt, edit, execute until the engine asks to quit

class Repl:
    def __init__(self, engine_class=EchoEngine,
                 history_size=HISTORY_SIZE, line_capacity=LINE_CAPACITY,
                 prompt=PROMPT, input_fd=0, output_fd=1):
        self.history = HistoryStore(history_size, line_capacity)
        self.prompt = prompt
        self.input_fd = input_fd
        self.output_fd = output_fd
        self.engine: ScriptEngine = engine_class(self.print)

    def _write(self, data: bytes) -> None:
        view = memoryview(data)
        while view:
            view = view[os.write(self.output_fd, view):]

    def print(self, output: str) -> None:
        self._write((output + "\n").encode("utf-8"))

    def read_command(self, index: int) -> int:
        self._write(self.prompt.encode("utf-8"))
        return edit_line(self.history, index, self.input_fd, self.output_fd)

    def run(self) -> int:
        self.print(f"> {BANNER}")
        index = 0
        while not self.engine.quit_requested:
            try:
                index = self.read_command(index)
            except EOFError:
                self._write(b"\n")
                break
            command = self.history[index].text.decode("latin-1")
            logger.debug("execute %r from history slot %d", command, index)
            try:
                self.engine.execute(command)
            except ScriptError as e:
                self.print(f"ERROR: {e.text}")
        return 0

def show_keys(input_fd, output_fd):
    """Print each decoded key event with its raw bytes, until Enter"""

    with RawTTY(input_fd):
        while True:
            data = os.read(input_fd, READ_SIZE)
            if not data:
                break
            event = decode_key(data)
            os.write(output_fd,
                f"{event.kind:<13}<<{byte_values(data)}>>\r\n".encode("ascii"))
            if event.kind == Key.COMMIT:
                break

def _on_terminate(signum, frame):
    # Unwind through RawTTY.__exit__ so the terminal mode is restored
    raise SystemExit(128 + signum)

def install_signal_handlers():
    signal.signal(signal.SIGTERM, _on_terminate)
    if hasattr(signal, "SIGHUP"):
        signal.signal(signal.SIGHUP, _on_terminate)

def configure_logging(log_level, log_file=None, stream=None):
    stream = stream or sys.stderr
    level = getattr(logging, log_level.upper())
    if log_file:
        logging.basicConfig(level=level, format=LOG_FORMAT, filename=log_file)
    elif stream.isatty():
        # The editor puts this terminal in raw mode, keep records off it
        logging.basicConfig(level=level, handlers=[logging.NullHandler()])
    else:
        logging.basicConfig(level=level, format=LOG_FORMAT, stream=stream)

# --------------------------------------------------------------------------- #
# tinyrepl CLI

@click.group()
@click.option("--log-level", envvar="TINYREPL_LOG_LEVEL", default="WARNING",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"],
                      case_sensitive=False),
    show_default=True, help="Diagnostics threshold")
@click.option("--log-file", envvar="TINYREPL_LOG_FILE", default=None,
    type=click.Path(dir_okay=False, writable=True),
    help="Diagnostics file (default: stderr, unless it is a terminal)")

def main(log_level, log_file):
    """Interactive line editor and script REPL"""

    configure_logging(log_level, log_file)

@main.command(name="repl")
@click.option("--engine", envvar="TINYREPL_ENGINE", default=DEFAULT_ENGINE,
    show_default=True, help="Script engine class as package.module.ClassName")
@click.option("--history-size", envvar="TINYREPL_HISTORY_SIZE",
    type=click.IntRange(min=1), default=HISTORY_SIZE, show_default=True)
@click.option("--line-capacity", envvar="TINYREPL_LINE_CAPACITY",
    type=click.IntRange(min=2), default=LINE_CAPACITY, show_default=True)
@click.option("--prompt", envvar="TINYREPL_PROMPT", default=PROMPT,
    show_default=True)

def repl_command(engine, history_size, line_capacity, prompt):
    """Run the interactive REPL on stdin/stdout

    tinyrepl repl --engine package.module.ClassName
    """

    try:
        engine_class = load_engine(engine)
    except EngineLoadError as e:
        raise click.BadParameter(str(e), param_hint="--engine") from e

    install_signal_handlers()
    repl = Repl(engine_class, history_size, line_capacity, prompt,
                sys.stdin.fileno(), sys.stdout.fileno())
    sys.exit(repl.run())

@main.command(name="keys")

def keys_command():
    """Show how each keystroke is decoded, until Enter

    tinyrepl keys
    """

    install_signal_handlers()
    show_keys(sys.stdin.fileno(), sys.stdout.fileno())

if __name__ == "__main__":
    main()

# --------------------------------------------------------------------------- #
