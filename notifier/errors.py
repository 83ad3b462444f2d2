"""Exception hierarchy for the notification service."""


class NotifierError(Exception):
    """Base exception for notification service errors"""
    pass


class MalformedEventError(NotifierError):
    """Raised when a transport payload cannot be turned into a canonical event"""
    pass


class CredentialError(NotifierError):
    """Base exception for subscriber credential failures"""
    pass


class MissingCredentialError(CredentialError):
    """Raised when a subscriber connects without a credential"""
    pass


class InvalidCredentialError(CredentialError):
    """Raised when a subscriber credential fails verification"""
    pass
