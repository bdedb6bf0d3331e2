from .errors import (
    EngineLoadError, ScriptError, TerminalModeError, TinyReplError)
from .line_editor import (
    RAW_MODE_SUPPORTED, AnsiRenderer, EditSession, HistoryStore, Key,
    KeyEvent, LineBuffer, RawTTY, decode_key, edit_line)
from .repl import EchoEngine, Repl, ScriptEngine, load_engine
