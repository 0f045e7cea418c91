"""Remote conversation resources."""

from interview_call.conversation.models import ConversationResource, SessionInput
from interview_call.conversation.resource_manager import (
    ConversationResourceManager,
    ConversationServiceConfig,
    classify_error,
)

__all__ = [
    "ConversationResource",
    "ConversationResourceManager",
    "ConversationServiceConfig",
    "SessionInput",
    "classify_error",
]
