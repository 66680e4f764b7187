from __future__ import annotations

import random
import re

CHAT_TITLES: tuple[str, ...] = (
    "General Discussion",
    "Quick Chat",
    "Daily Conversation",
    "Casual Talk",
    "Random Thoughts",
    "Morning Chat",
    "Evening Discussion",
    "Friendly Conversation",
    "Quick Questions",
    "General Inquiry",
)

THINKING_TEXTS: tuple[str, ...] = (
    "Let me think about this...",
    "Processing your request...",
    "Analyzing your message...",
    "Working on a response...",
    "Give me a moment...",
    "Hmm, interesting question...",
    "Looking into this...",
    "Considering your input...",
)

ASSISTANT_REPLIES: dict[str, tuple[str, ...]] = {
    "en": (
        "Hello! How can I help you today?",
        "That's an interesting question. Let me think about that.",
        "I understand what you're asking. Here's what I think...",
        "Thanks for sharing that with me. I appreciate your perspective.",
        "That's a great point. I'd like to add that...",
        "I see what you mean. Let me provide some insights on this topic.",
        "That's an excellent question! Here's my take on it...",
        "I appreciate you bringing this up. Let me help clarify that for you.",
        "Interesting! I've learned something new from your message.",
        "Thank you for the detailed explanation. I find this topic fascinating.",
    ),
    "ar": (
        "مرحباً! كيف يمكنني مساعدتك اليوم؟",
        "هذا سؤال مثير للاهتمام. دعني أفكر في ذلك.",
        "أفهم ما تسأل عنه. إليك ما أعتقده...",
        "شكراً لك على مشاركة ذلك معي. أقدر وجهة نظرك.",
        "هذه نقطة رائعة. أود أن أضيف أن...",
        "أرى ما تعنيه. دعني أقدم بعض الرؤى حول هذا الموضوع.",
        "هذا سؤال ممتاز! إليك رأيي في الأمر...",
        "أقدر طرحك لهذا الموضوع. دعني أساعد في توضيح ذلك لك.",
        "مثير للاهتمام! لقد تعلمت شيئاً جديداً من رسالتك.",
        "شكراً لك على الشرح المفصل. أجد هذا الموضوع رائعاً.",
    ),
}

_ARABIC_RE = re.compile(r"[\u0600-\u06FF]")


def detect_language(text: str) -> str:
    """Return ``"ar"`` when the text contains Arabic script, else ``"en"``."""
    return "ar" if _ARABIC_RE.search(text or "") else "en"


class ReplyGenerator:
    """Picks canned titles, thinking texts and assistant replies.

    All choices go through one ``random.Random`` so a seeded generator gives
    reproducible output.
    """

    def __init__(self, rng: random.Random | None = None, seed: int | None = None) -> None:
        self._rng = rng if rng is not None else random.Random(seed)

    def title(self) -> str:
        return self._rng.choice(CHAT_TITLES)

    def thinking(self) -> str:
        return self._rng.choice(THINKING_TEXTS)

    def reply(self, user_text: str) -> str:
        """Canned assistant reply in the language of ``user_text``."""
        return self._rng.choice(ASSISTANT_REPLIES[detect_language(user_text)])
