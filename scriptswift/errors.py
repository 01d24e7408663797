"""
scriptswift/errors.py — Error taxonomy
======================================
Every failure a caller of the conversation session can see. Collaborator
errors propagate unchanged to the caller; nothing here retries.
"""


class ScriptSwiftError(Exception):
    """Base class. `retryable` tells the caller whether re-issuing may help."""

    retryable = False

    def __init__(self, message: str = "", *, retryable: bool | None = None):
        super().__init__(message)
        self.message = message
        if retryable is not None:
            self.retryable = retryable

    def to_dict(self) -> dict:
        return {
            "error": self.message or self.__class__.__name__,
            "type": self.__class__.__name__,
            "retryable": self.retryable,
        }


class ValidationError(ScriptSwiftError):
    """Malformed input, raised before any state transition."""

    def __init__(self, field: str, message: str):
        super().__init__(message)
        self.field = field

    def to_dict(self) -> dict:
        d = super().to_dict()
        d["field"] = self.field
        return d


class FetchError(ScriptSwiftError):
    """Website content could not be fetched."""


class NoOutputError(ScriptSwiftError):
    """An LLM-backed collaborator returned nothing usable."""

    retryable = True


class SummarizationError(NoOutputError):
    """Website analysis produced no summary."""


class GenerationError(NoOutputError):
    """The model did not return a valid script turn."""


class LLMTimeoutError(NoOutputError):
    """The model call did not finish within the configured timeout."""


class StateError(ScriptSwiftError):
    """Operation invoked in a state that does not allow it."""
