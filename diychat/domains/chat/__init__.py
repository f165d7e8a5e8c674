"""Chat domain - response production for one conversational turn.

Services:
    - ChatService: append, build context, produce and store the reply
    - LLMResponseProducer: intent-routed generation over a context package
"""

from diychat.domains.chat.intent import (
    FallbackIntentClassifier,
    IntentClassifier,
    IntentResult,
    ModelIntentClassifier,
    PatternIntentClassifier,
)
from diychat.domains.chat.producer import (
    LLMResponseProducer,
    ModelProfile,
    ProducedReply,
    ResponseProducer,
)
from diychat.domains.chat.prompts import build_system_prompt
from diychat.domains.chat.service import ChatService, ChatTurn

__all__ = [
    "ChatService",
    "ChatTurn",
    "FallbackIntentClassifier",
    "IntentClassifier",
    "IntentResult",
    "LLMResponseProducer",
    "ModelIntentClassifier",
    "ModelProfile",
    "PatternIntentClassifier",
    "ProducedReply",
    "ResponseProducer",
    "build_system_prompt",
]
