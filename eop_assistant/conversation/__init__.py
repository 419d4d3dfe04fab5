# Conversation internals: state, persistence, errors, and the turn driver.

# Re-export entry-points so callers can use ``from eop_assistant.conversation import ConversationDriver``.
from eop_assistant.conversation.driver import ChatReply, ConversationDriver  # noqa: F401
