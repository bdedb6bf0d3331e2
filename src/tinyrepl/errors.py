__all__ = [
    "EngineLoadError", "ScriptError", "TerminalModeError", "TinyReplError",
]


class TinyReplError(Exception):
    pass


class TerminalModeError(TinyReplError):
    """Raw mode could not be entered or the saved mode could not be restored."""


class ScriptError(TinyReplError):
    """Raised by a script engine for an error in the submitted command."""

    def __init__(self, text: str):
        super().__init__(text)
        self.text = text


class EngineLoadError(TinyReplError):
    pass
