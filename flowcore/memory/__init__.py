"""
Long-horizon assistant memory.

Records live in ``records``; ``MemoryStore`` owns and persists them.
"""

from flowcore.memory.records import (
    ConversationSatisfaction,
    ConversationSummary,
    InsightType,
    LearnedPatterns,
    Memory,
    MotivationStyle,
    SessionInsight,
    UserPreferences,
    trim_fifo,
)
from flowcore.memory.store import MemoryStore

__all__ = [
    "ConversationSatisfaction",
    "ConversationSummary",
    "InsightType",
    "LearnedPatterns",
    "Memory",
    "MemoryStore",
    "MotivationStyle",
    "SessionInsight",
    "UserPreferences",
    "trim_fifo",
]
