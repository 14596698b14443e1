class LinkVaultError(Exception):
    """Base class for failures scoped to a single interaction or tick."""


class ValidationError(LinkVaultError):
    """Input rejected locally, before any storage call."""


class AuthError(LinkVaultError):
    """No active session where one is required."""


class StorageError(LinkVaultError):
    """An insert, select, update or delete against the bookmark store failed."""


class ChannelError(LinkVaultError):
    """The realtime change channel could not be opened."""
