# backend/rental_search/conversation.py
import logging
from typing import List, Optional, Sequence

from .schemas import ConversationTurn

logger = logging.getLogger(__name__)

History = List[ConversationTurn]


class ConversationManager:
    """
    Keeps conversation history as plain ordered lists.

    Operations never touch the list they are given; they return a new one.
    With max_turns set, the oldest turns are dropped first once the history
    grows past it. Without it, history grows until reset.
    """

    def __init__(self, max_turns: Optional[int] = None):
        if max_turns is not None and max_turns < 0:
            raise ValueError("max_turns cannot be negative")
        self.max_turns = max_turns

    def append(self, history: Sequence[ConversationTurn], turn: ConversationTurn) -> History:
        updated = list(history)
        updated.append(turn)
        if self.max_turns is not None and len(updated) > self.max_turns:
            dropped = len(updated) - self.max_turns
            logger.debug("History over %d turns, dropping %d oldest", self.max_turns, dropped)
            updated = updated[dropped:]
        return updated

    def extend(self, history: Sequence[ConversationTurn], *turns: ConversationTurn) -> History:
        for turn in turns:
            history = self.append(history, turn)
        return list(history)

    def reset(self) -> History:
        return []
