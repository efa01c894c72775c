"""Custom Exceptions for the PolySub application."""

from typing import Optional, Sequence


class PolySubError(Exception):
    """Base class for exceptions in this module."""
    pass

class ConfigurationError(PolySubError):
    """Exception raised for errors in configuration loading."""
    pass

class FileSystemError(PolySubError):
    """Exception raised for file system related errors (permissions, not found etc)."""
    pass

class FormattingError(PolySubError):
    """Exception raised for errors while parsing or writing subtitle files."""
    pass

class TranscriptionError(PolySubError):
    """Exception raised for errors during transcription."""
    pass

class TranslationError(PolySubError):
    """Exception raised for errors during translation."""
    pass

class TransportFailure(TranslationError):
    """Network/HTTP failure (or timeout) while calling an AI endpoint. Retried."""
    pass

class InvalidResponseShape(TranslationError):
    """The endpoint answered, but not with a JSON array we can use. Retried."""
    pass

class OperationCancelled(PolySubError):
    """Raised when a cancellation token was triggered before the next step."""
    pass


class MalformedTimestamp(PolySubError, ValueError):
    """Raised when a timestamp does not match HH:MM:SS,mmm."""

    def __init__(self, value: str):
        super().__init__(f"Malformed timestamp: {value!r}")
        self.value = value


class BatchExhausted(TranslationError):
    """
    A batch failed on every retry attempt. Fatal for the whole file run.

    Attributes:
        first_id: Id of the first subtitle line in the failed batch.
        attempts: Number of attempts made for the batch.
        last_error: The error from the final attempt.
        partial_result: Snapshot of the file with every earlier batch merged in.
    """

    def __init__(
        self,
        first_id: int,
        attempts: int,
        last_error: Optional[BaseException] = None,
        partial_result: Sequence = ()
    ):
        super().__init__(
            f"Translation failed at subtitle #{first_id} after {attempts} attempt(s): {last_error}"
        )
        self.first_id = first_id
        self.attempts = attempts
        self.last_error = last_error
        self.partial_result = tuple(partial_result)
