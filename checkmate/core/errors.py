"""
Error taxonomy shared by the investigation pipeline and the HTTP layer.

Each error carries the HTTP status it maps to; the API turns any of them into
a ``{"error": message}`` body.
"""


class CheckmateError(Exception):
    status_code: int = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(CheckmateError):
    """Malformed or absent input. Never retried."""
    status_code = 400


class ExtractionError(CheckmateError):
    """A single content source could not be resolved."""


class ClassificationError(CheckmateError):
    """The investigation type could not be decided."""


class ToolExecutionError(CheckmateError):
    """A tool invoked by the agent failed."""


class OrchestrationError(CheckmateError):
    """The agent loop could not produce a result (bad final output or time budget exceeded)."""


class PersistenceError(CheckmateError):
    """The history store failed."""
