class AetherTicketError(Exception):
    """Base exception class for all AetherTicket errors."""

    pass


class UserFriendlyError(AetherTicketError):
    """An exception that can be safely displayed to the user.

    Attributes:
        user_message (str): The message to display to the user.
    """

    def __init__(self, message: str, user_message: str) -> None:
        """Initialize the error.

        Args:
            message: Internal log message.
            user_message: User-facing message.
        """
        super().__init__(message)
        self.user_message = user_message


class ValidationError(UserFriendlyError):
    """Raised when a command is used outside the context it requires."""


class NotATicketError(UserFriendlyError):
    """Raised when a channel has no ticket record and cannot be reconciled into one."""

    def __init__(self, channel_id: int | str) -> None:
        """Initialize the error for the given channel."""
        super().__init__(f"Channel {channel_id} is not a ticket channel", "This is not a ticket channel!")
        self.channel_id = channel_id


class DuplicateTicketError(UserFriendlyError):
    """Raised when a user already owns an open ticket channel."""

    def __init__(self, user_id: int | str, channel_mention: str) -> None:
        """Initialize the error with the channel the user already owns."""
        super().__init__(
            f"User {user_id} already has an open ticket",
            f"You already have an open ticket: {channel_mention}",
        )
        self.user_id = user_id


class StorageError(AetherTicketError):
    """Base class for ticket repository failures."""


class StorageInitError(StorageError):
    """Raised when the ticket store cannot be opened or its schema created."""


class StorageReadError(StorageError):
    """Raised when a ticket lookup fails."""


class StorageWriteError(StorageError):
    """Raised when a ticket write fails."""


class DuplicateChannelError(StorageWriteError):
    """Raised when a ticket record already exists for a channel."""

    def __init__(self, channel_id: str) -> None:
        """Initialize the error for the conflicting channel."""
        super().__init__(f"A ticket record already exists for channel {channel_id}")
        self.channel_id = channel_id


class GatewayError(AetherTicketError):
    """Raised when a call against the Discord API fails."""


class PermissionDeniedError(AetherTicketError):
    """Raised when the bot lacks a permission it checked for before acting."""

    def __init__(self, permission: str, channel_id: int | str) -> None:
        """Initialize the error for the missing permission."""
        super().__init__(f"Missing {permission} permission in channel {channel_id}")
        self.permission = permission
        self.channel_id = channel_id


class IllegalTransitionError(UserFriendlyError):
    """Raised when a ticket lifecycle transition is not allowed from the current state."""
