"""Error taxonomy for the consultation → client conversion core.

Token failures are distinguished for auditing but share one public message, so a caller
cannot learn which check rejected a link.
"""


class ClientGateError(Exception):
    """Base class for every error raised by the core."""

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message or self.__class__.__name__


class ValidationError(ClientGateError):
    """Bad input from the caller."""


class NotFoundError(ClientGateError):
    pass


class InvalidStateError(ClientGateError):
    """Operation is not legal in the record's current lifecycle phase."""


class DuplicateAccountError(ClientGateError):
    pass


class TransientError(ClientGateError):
    """Store timeout or connection failure; safe to retry with the same inputs."""


class TokenError(ClientGateError):
    public_message = "Invalid or expired registration link."
    reason = "invalid_token"


class InvalidSignatureError(TokenError):
    reason = "invalid_signature"


class WrongPurposeError(TokenError):
    reason = "wrong_purpose"


class ExpiredTokenError(TokenError):
    reason = "expired"


class AlreadyUsedError(TokenError):
    reason = "already_used"


class TokenMismatchError(TokenError):
    reason = "token_mismatch"
