"""Exceptions raised by chatbubble.

Only misconfiguration and transcript corruption are raised; validation,
rate limiting and consent are reported through the chat session itself.
"""


class ChatBubbleError(Exception):
    """Base class for all chatbubble errors."""


class InvalidToolDescriptor(ChatBubbleError):
    """A tool descriptor is not a reference, a factory or a Tool."""

    def __init__(self, message: str = "Tool must be a string, callable, or Tool instance"):
        super().__init__(message)


class UnknownToolReference(InvalidToolDescriptor):
    """A string reference is neither bound nor importable."""

    def __init__(self, reference: str):
        super().__init__(f"Unable to resolve tool reference: {reference}")
        self.reference = reference


class InvalidToolResult(ChatBubbleError):
    """A tool factory returned something that is not a Tool."""

    def __init__(self, message: str = "Callable must return a Tool instance"):
        super().__init__(message)


class UnknownMessageRole(ChatBubbleError):
    """A transcript entry carries a role that cannot be replayed."""

    def __init__(self, role: str):
        super().__init__(f"Unknown message role: {role}")
        self.role = role
