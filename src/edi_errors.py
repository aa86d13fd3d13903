class EdiIngestError(Exception):
    """Base class for errors raised by the ingest core."""


class MalformedSegmentError(EdiIngestError):
    """A line tokenized to nothing usable (empty line or blank identifier)."""

    def __init__(self, message: str, line_number: int = None):
        super().__init__(message)
        self.line_number = line_number


class InputUnavailableError(EdiIngestError):
    """The line sequence for a run is missing or could not be read."""


class SchemaLoadError(EdiIngestError):
    """A document schema file could not be loaded."""
