class DonationError(Exception):
    """Base class for everything the ledger raises on purpose."""


class ValidationError(DonationError):
    """Bad caller input. Surfaced to the caller as a 4xx with its message."""


class AuthenticationError(DonationError):
    """A notification whose signature does not match the shared secret."""


class StorageError(DonationError):
    """The record store is unavailable, timed out, or refused a write."""


class NotFoundError(DonationError):
    """No donation record exists for the requested reference."""
