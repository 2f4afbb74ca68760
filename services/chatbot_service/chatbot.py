"""
Chatbot service - answers visitor messages while no staff member is attached.
"""

from typing import Optional

from services.chatbot_service.dataset_store import DatasetStore
from services.chatbot_service.essential_intents import EssentialIntentFilter
from services.chatbot_service.match_engine import MatchEngine
from services.chatbot_service.models import BotReply
from utils.logging_config import get_logger, log_user_interaction


class ChatbotService:
    """
    Chains the essential-intent filter and the dataset match engine.
    The match engine is only consulted when the filter does not match.
    """

    def __init__(self, dataset_store: DatasetStore = None, intent_filter: EssentialIntentFilter = None,
                 match_engine: MatchEngine = None):
        self.logger = get_logger(__name__)
        self.dataset_store = dataset_store or DatasetStore()
        self.intent_filter = intent_filter or EssentialIntentFilter()
        self.match_engine = match_engine or MatchEngine(self.dataset_store)

    def warm_up(self):
        """Load the dataset ahead of the first visitor message"""
        self.dataset_store.load()

    def reply(self, utterance: str) -> BotReply:
        """Return the bot's answer to ``utterance``"""
        classification = self.intent_filter.classify(utterance)
        if classification.matched:
            reply = BotReply(text=classification.response, intent=classification.intent, source="essential")
        else:
            result = self.match_engine.resolve(utterance)
            reply = BotReply(text=result.response, intent=result.intent, source=result.stage)

        log_user_interaction(self.logger, "bot_reply", intent=reply.intent, source=reply.source)
        return reply

    def self_test(self, query: str = "How do I get a barangay clearance?") -> BotReply:
        """Run one resolution and log what the loaded dataset answers"""
        self.warm_up()
        reply = self.reply(query)
        self.logger.info(
            f"Chatbot self-test: {len(self.dataset_store)} entries, "
            f"{len(self.dataset_store.available_intents())} intents; "
            f"{query!r} -> {reply.intent} via {reply.source}"
        )
        return reply


# Global chatbot service instance
_chatbot_service: Optional[ChatbotService] = None


def get_chatbot_service() -> ChatbotService:
    """Get the global chatbot service instance"""
    global _chatbot_service
    if _chatbot_service is None:
        _chatbot_service = ChatbotService()
    return _chatbot_service
