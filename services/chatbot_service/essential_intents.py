"""
Essential intent filter - canned replies for greetings, help, office hours
and closing remarks, checked before the dataset is consulted.
"""

import re
from dataclasses import dataclass
from typing import List, Tuple

from services.chatbot_service.models import IntentClassification
from utils.logging_config import get_logger


GREETING_WORDS = ('hi', 'hello', 'hey')

GREETING_PATTERNS = [
    re.compile(r"^(hi|hello|hey)$"),
    re.compile(r"^(hi|hello|hey)\s+(there|everyone|all|guys|folks)$"),
    re.compile(r"^(good\s+(morning|afternoon|evening))$"),
    re.compile(r"^(greetings?|howdy)$"),
    re.compile(r"^(hi|hello|hey)\s+(hi|hello|hey)"),
    re.compile(r"^(hi|hello|hey)\s+(hi|hello|hey)\s+(there|everyone|all)$"),
    re.compile(r"^(hi|hello|hey)\s+(there|everyone|all)\s+(hi|hello|hey)$"),
]

GREETING_RESPONSE = """Hello! I am the Commu-bot. I'm here to help you with information about our barangay services, including:

• Barangay Clearance
• Indigency Certificates
• Permits
• Health and Emergency Services
• Office Hours
• Event Information
• Live Chat with Agent
• And much more!

How can I assist you today?"""

HELP_RESPONSE = """I can help you with information on several barangay documents and services:

• Barangay Clearance
• Certificate of Residency
• Indigency Certificate
• Permits
• Office Hours
• Location
• Health and Emergency Services
• Event Information
• Live Chat with Agent

Which document or service do you need help with?"""

OFFICE_HOURS_RESPONSE = (
    "Our barangay office is open from 8:00 AM to 5:00 PM. "
    "For urgent matters, you can contact our emergency hotline."
)

CLOSING_RESPONSE = "Great! If you want more assistance just enter Hi/Help!"


@dataclass(frozen=True)
class KeywordRule:
    """A category matched by whole-word keyword containment"""
    intent: str
    category: str
    keywords: Tuple[str, ...]
    response: str

    def matches(self, text: str) -> bool:
        """
        True when a keyword appears as a whole word or phrase. This departs
        from plain substring containment on purpose: "ty" must not fire on
        "city", and "open" does not fire on "opening".
        """
        return any(
            re.search(r"(?<!\w)" + re.escape(keyword) + r"(?!\w)", text)
            for keyword in self.keywords
        )


DEFAULT_RULES = [
    KeywordRule(
        intent="help",
        category="general_info",
        keywords=('help', 'what can you do', 'what do you do', 'assist', 'guide'),
        response=HELP_RESPONSE,
    ),
    KeywordRule(
        intent="office_hours",
        category="general_info",
        keywords=('office hours', 'hours', 'open', 'close', 'time', 'schedule'),
        response=OFFICE_HOURS_RESPONSE,
    ),
    KeywordRule(
        intent="closing_remarks",
        category="general_info",
        keywords=(
            'thanks', 'thank you', 'thankyou', 'thank u', 'okay', 'ok', 'noted',
            'alright', 'great', 'cool', 'got it', 'ty', 'tys',
        ),
        response=CLOSING_RESPONSE,
    ),
]


class EssentialIntentFilter:
    """
    Deterministic classifier for a closed set of conversational intents.

    Greetings match a fixed set of patterns, or any message of at most four
    words containing a bare greeting word. The other categories match when
    one of their keywords appears as whole words.
    """

    greeting_intent = "greeting"
    max_loose_greeting_words = 4

    def __init__(self, rules: List[KeywordRule] = None, greeting_response: str = GREETING_RESPONSE):
        self.logger = get_logger(__name__)
        self.rules = list(rules) if rules is not None else list(DEFAULT_RULES)
        self.greeting_response = greeting_response

    def is_greeting(self, text: str) -> bool:
        text = text.lower().strip()
        if any(pattern.search(text) for pattern in GREETING_PATTERNS):
            return True

        words = text.split()
        return len(words) <= self.max_loose_greeting_words and any(w in GREETING_WORDS for w in words)

    def classify(self, utterance: str) -> IntentClassification:
        text = (utterance or "").lower().strip()

        if self.is_greeting(text):
            self.logger.debug(f"Greeting detected: {text!r}")
            return IntentClassification(
                matched=True,
                intent=self.greeting_intent,
                response=self.greeting_response,
                category="greeting",
            )

        for rule in self.rules:
            if rule.matches(text):
                self.logger.debug(f"Essential intent {rule.intent} detected: {text!r}")
                return IntentClassification(
                    matched=True,
                    intent=rule.intent,
                    response=rule.response,
                    category=rule.category,
                )

        return IntentClassification(matched=False)
