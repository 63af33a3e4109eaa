"""
Exception Classes - Strongly typed exception hierarchy.

NO DICTIONARIES - All exceptions have typed attributes.

Every verification failure carries a human-readable ``message`` that is
returned to the caller verbatim as the outcome message.
"""


class VerificationError(Exception):
    """Base exception for all receipt verification errors."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class InvalidReceiptError(VerificationError):
    """Raised when the client receipt is incomplete. Never reaches upstream."""

    def __init__(self) -> None:
        super().__init__("Invalid Receipt")


class UpstreamUnreachableError(VerificationError):
    """Raised when the store authority could not be reached or answered non-2xx."""

    def __init__(self, authority: str, message: str) -> None:
        self.authority = authority
        super().__init__(message)


class UpstreamParseError(VerificationError):
    """Raised when the store authority response could not be deserialized."""

    def __init__(self, authority: str, message: str) -> None:
        self.authority = authority
        super().__init__(message)


class WrongEnvironmentError(VerificationError):
    """Raised when the authority reports the receipt belongs to the other environment."""

    def __init__(self, authority: str, message: str) -> None:
        self.authority = authority
        super().__init__(message)


class UpstreamRejectedError(VerificationError):
    """Raised when the authority explicitly reports the purchase invalid."""

    def __init__(self, authority: str, message: str) -> None:
        self.authority = authority
        super().__init__(message)


class NoReceiptError(UpstreamRejectedError):
    """Raised when the authority response carries no receipt at all."""

    def __init__(self, authority: str) -> None:
        super().__init__(authority, "no receipt returned")


class MalformedPayloadError(UpstreamParseError):
    """Raised when a payload parses but is missing a field the mapping requires."""

    def __init__(self, authority: str, field: str) -> None:
        self.field = field
        super().__init__(authority, f"{authority} response is missing '{field}'")


class ReconciliationMismatchError(VerificationError):
    """Raised when claimed identifiers do not match the authoritative record."""

    def __init__(self, field: str, claimed: str, message: str) -> None:
        self.field = field
        self.claimed = claimed
        super().__init__(message)
