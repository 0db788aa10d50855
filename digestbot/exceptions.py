"""
Exception types for digestbot.
"""


class DigestBotError(Exception):
    """Base class for all digestbot errors."""


class ConfigurationError(DigestBotError):
    """Raised when required configuration is missing or invalid."""


class NotInitializedError(DigestBotError):
    """Raised when a pipeline run is requested before initialization finished."""


class StoreError(DigestBotError):
    """Raised when the article store cannot complete a query."""


class NotificationError(DigestBotError):
    """Raised when a notification channel fails to deliver a message."""
