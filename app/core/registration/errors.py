"""Registration domain exceptions."""

from typing import Optional


class RegistrationError(Exception):
    """Base class for registration errors."""
    pass


class ExtractionError(RegistrationError):
    """Raised when the fact extractor fails or returns unusable output."""
    pass


class ExtractionTimeoutError(ExtractionError):
    """Raised when the fact extractor does not answer in time."""
    pass


class ConversationNotFoundError(RegistrationError):
    """Raised when a conversation id is unknown."""

    def __init__(self, conversation_id: str):
        super().__init__(f"Conversation not found: {conversation_id}")
        self.conversation_id = conversation_id


class InvalidSelectionError(RegistrationError):
    """Raised when a selected session cannot be registered for."""

    def __init__(self, session_id: str, reason: str, issue: Optional[str] = None):
        super().__init__(f"Session {session_id} cannot be selected: {reason}")
        self.session_id = session_id
        self.reason = reason
        self.issue = issue


class InvalidTransitionError(RegistrationError):
    """Raised when an event is not allowed in the current state."""

    def __init__(self, from_state: str, event: str):
        super().__init__(f"Cannot {event} from state {from_state}")
        self.from_state = from_state
        self.event = event


class ContextMismatchError(RegistrationError):
    """Raised when a client copy of the context disagrees with the stored one."""

    def __init__(self, conversation_id: str, field: str):
        super().__init__(f"Context for {conversation_id} does not match stored {field}")
        self.conversation_id = conversation_id
        self.field = field
