"""Error types raised by the slicing and tree-hash engine."""


class ColdVaultError(Exception):
    """Base class for coldvault errors.

    Every error carries a short machine-readable code alongside its message so
    callers can branch on the kind without matching message text.
    """

    code = "ColdVaultError"

    def __init__(self, message: str = "", code: str = ""):
        if code:
            self.code = code
        if not message:
            message = f"coldvault error: {self.code}"
        self.message = message
        super().__init__(message)


class InvalidRange(ColdVaultError, ValueError):
    code = "InvalidRange"


class RangeParseError(ColdVaultError, ValueError):
    code = "ParseError"


class InvalidArgument(ColdVaultError, ValueError):
    code = "InvalidArgument"


class PayloadValidationError(ColdVaultError, ValueError):
    code = "InvalidPayload"


class MissingLength(ColdVaultError, ValueError):
    code = "MissingLength"


class SlicingNotStarted(ColdVaultError, RuntimeError):
    code = "NotStarted"


class SlicingExhausted(ColdVaultError, RuntimeError):
    code = "Exhausted"


class HashingIOError(ColdVaultError, OSError):
    code = "IOFailure"


class EmptyInput(ColdVaultError, ValueError):
    code = "EmptyInput"


class TreeHashMismatch(ColdVaultError):
    """Archive-level tree hash differs from the one the service reported."""

    code = "TreeHashMismatch"

    def __init__(self, expected: str, actual: str):
        self.expected = expected
        self.actual = actual
        super().__init__(f"Tree hash mismatch: computed {expected}, service reported {actual}")
