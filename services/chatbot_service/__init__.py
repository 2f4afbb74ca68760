"""
Chatbot service - dataset loading, intent matching and canned replies.
"""

from .models import FALLBACK_INTENT, BotReply, DatasetEntry, IntentClassification, MatchResult
from .dataset_store import DatasetStore, DatasetUnavailableError, fetch_dataset_text, parse_dataset
from .match_engine import (
    MatchEngine,
    extract_keywords,
    keyword_score,
    levenshtein_distance,
    similarity,
)
from .essential_intents import EssentialIntentFilter
from .chatbot import ChatbotService, get_chatbot_service

__all__ = [
    'FALLBACK_INTENT',
    'BotReply',
    'DatasetEntry',
    'IntentClassification',
    'MatchResult',
    'DatasetStore',
    'DatasetUnavailableError',
    'fetch_dataset_text',
    'parse_dataset',
    'MatchEngine',
    'extract_keywords',
    'keyword_score',
    'levenshtein_distance',
    'similarity',
    'EssentialIntentFilter',
    'ChatbotService',
    'get_chatbot_service',
]
