"""
Conversation Memory

Keeps the turns of a chat session, formats recent turns for the prompt
and exports the session as JSON or text.
"""

import json
from datetime import datetime
from typing import List, Optional, Dict, Any
from dataclasses import dataclass

from .citations import CitationSource
from .pipeline import AnswerWithSources

SUMMARY_LENGTH = 100
PROMPT_WINDOW = 5


@dataclass
class Turn:
    """One question and its answer."""
    user_message: str
    result: AnswerWithSources
    timestamp: datetime

    @property
    def answer_summary(self) -> str:
        return self.result.answer.strip()[:SUMMARY_LENGTH].replace("\n", " ")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_message": self.user_message,
            "timestamp": self.timestamp.isoformat(),
            "answer_summary": self.answer_summary,
            "result": self.result.to_dict(),
        }


class ConversationManager:
    """History of a single chat session."""

    def __init__(self, conversation_id: Optional[str] = None):
        self._reset(conversation_id)

    def _reset(self, conversation_id: Optional[str] = None):
        now = datetime.now()
        self.id = conversation_id or f"chat-{now.strftime('%Y%m%d-%H%M%S')}"
        self.turns: List[Turn] = []
        self.created_at = now
        self.last_updated = now

    def add_turn(self, user_message: str, result: AnswerWithSources):
        self.turns.append(Turn(user_message=user_message, result=result, timestamp=datetime.now()))
        self.last_updated = datetime.now()

    def context_window(self, size: int = 3) -> List[Turn]:
        """The last `size` turns."""
        if size <= 0:
            return []
        return self.turns[-size:]

    def format_history_for_prompt(self) -> str:
        if not self.turns:
            return ""

        lines = ["Previous conversation:"]
        for turn in self.context_window(PROMPT_WINDOW):
            lines.append(f"User: {turn.user_message}")
            lines.append(f"Assistant: {turn.answer_summary}")
            lines.append("")
        return "\n".join(lines)

    def format_history_for_display(self) -> str:
        if not self.turns:
            return "Conversation history is empty."

        lines = [f"Conversation history ({len(self.turns)} turns):", "-" * 80, ""]
        for number, turn in enumerate(self.turns, 1):
            source_ids = ", ".join(s.id for s in turn.result.sources) or "none"
            lines.append(f"[Turn {number}] {turn.timestamp.strftime('%H:%M:%S')}")
            lines.append(f"Q: {turn.user_message}")
            lines.append(f"A: {turn.answer_summary}...")
            lines.append(f"   Sources: {source_ids}")
            lines.append("")
        lines.append("-" * 80)
        return "\n".join(lines)

    def export_json(self) -> str:
        return json.dumps({
            "id": self.id,
            "created_at": self.created_at.isoformat(),
            "last_updated": self.last_updated.isoformat(),
            "turns": [turn.to_dict() for turn in self.turns],
        }, ensure_ascii=False, indent=2)

    def export_text(self) -> str:
        lines = [
            f"Conversation ID: {self.id}",
            f"Started: {self.created_at.strftime('%Y-%m-%d %H:%M:%S')}",
            f"Last updated: {self.last_updated.strftime('%Y-%m-%d %H:%M:%S')}",
            "",
            "=" * 80,
            "",
        ]
        for number, turn in enumerate(self.turns, 1):
            lines.append(f"--- Turn {number} ---")
            lines.append(f"Time: {turn.timestamp.strftime('%H:%M:%S')}")
            lines.append(f"User: {turn.user_message}")
            lines.append(f"Assistant: {turn.result.answer}")
            lines.append("Sources:")
            for source in turn.result.sources:
                lines.append(f'  {source.id} {source.file}: "{source.preview}"')
            lines.append("")
        return "\n".join(lines)

    def all_sources(self) -> List[CitationSource]:
        """Every source used in the session, first occurrence per chunk."""
        seen: Dict[str, CitationSource] = {}
        for turn in self.turns:
            for source in turn.result.sources:
                seen.setdefault(f"{source.file}::{source.chunk_id}", source)
        return list(seen.values())

    def __len__(self) -> int:
        return len(self.turns)

    def clear(self):
        """Forget all turns and start a new session id."""
        self._reset()
