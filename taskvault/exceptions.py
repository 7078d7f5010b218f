class AuthenticationError(Exception):
    """Raised when a bearer token is missing or unusable, or login has not completed."""


class TokenExchangeError(AuthenticationError):
    """Raised when the identity provider rejects an authorization-code exchange."""


class InvalidStatusError(Exception):
    """Raised when a task status is outside the allowed set."""

    def __init__(self, status, allowed: list[str]):
        super().__init__(f"Invalid status: {status!r}")
        self.status = status
        self.allowed = allowed


class NoUpdatableFieldsError(Exception):
    """Raised when an update request carries no recognized task field."""


class TaskNotFoundError(Exception):
    """Raised when an update targets a task that does not exist for the owner."""


class StoreError(Exception):
    """Raised when a DynamoDB call fails."""


class IntegrationError(Exception):
    """Raised when the task API answers with a non-success status."""
