# mihomerge/core/errors.py

from typing import Optional


class MihomergeError(Exception):
    """Base class for every error raised by the merge pipeline."""


class DocumentError(MihomergeError):
    """Payload is not a usable configuration mapping."""


class TemplateError(MihomergeError):
    """Template is missing or unparsable. Nothing to merge onto."""


class BaseConfigError(MihomergeError):
    """A base config was supplied but could not be parsed."""


class NoSubscriptionError(MihomergeError):
    """No subscription source was configured or requested."""


class SubscriptionError(MihomergeError):
    """
    A single subscription could not be fetched or decoded.
    The run continues without it.
    """

    def __init__(self, message: str, subscription_id: Optional[str] = None):
        super().__init__(message)
        self.subscription_id = subscription_id

    def __str__(self) -> str:
        message = super().__str__()
        if self.subscription_id:
            return f"subscription '{self.subscription_id}': {message}"
        return message
