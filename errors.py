class HzError(Exception):
    """Base class for every failure the codec reports."""


class ReadError(HzError):
    """The source could not be opened or a read failed mid-stream."""


class Cancelled(ReadError):
    """The host closed the source while it was being scanned."""


class WriteError(HzError):
    """The destination could not be written."""


class MalformedContainer(HzError):
    """Header or code table of a container is inconsistent."""


class UndecodableBitstream(HzError):
    """Payload bits do not resolve to a complete symbol sequence."""


class InternalInvariantViolation(HzError):
    """Tree or queue state that valid input can never produce."""
