from __future__ import annotations

from dataclasses import dataclass
from datetime import timezone, tzinfo
from typing import List, Optional

from yournal.memory.types import RetrievalResult

NO_ENTRIES_MARKER = "No relevant journal entries found."
MISSING_TEXT = "No text content"

SYSTEM_PROMPT = (
    "You are an AI assistant that helps users analyze their journal entries. "
    "Your role is to: "
    "1. Analyze the provided journal entries for context. "
    "2. Provide insights, patterns, or answers based on the user's journal content. "
    "3. Be helpful and supportive in your analysis. "
    "4. If no relevant entries are found, acknowledge this and offer general journaling advice. "
    "5. Keep responses concise and focused on the user's question."
)


@dataclass(frozen=True)
class ContextSnippet:
    """One truncated entry excerpt tagged with its provenance."""

    record_id: str
    date: str
    relevance_pct: int
    text: str

    def render(self) -> str:
        return f"- {self.date} ({self.relevance_pct}% relevant): {self.text}..."


@dataclass(frozen=True)
class ContextWindow:
    """Bounded excerpt of retrieved entries handed to the completion service."""

    snippets: tuple[ContextSnippet, ...]

    @property
    def is_empty(self) -> bool:
        return not self.snippets

    def render(self) -> str:
        if not self.snippets:
            return NO_ENTRIES_MARKER
        lines = ["Relevant journal entries:"]
        lines.extend(snippet.render() for snippet in self.snippets)
        return "\n".join(lines)


class PromptBuilder:
    """Compose the context block and chat messages for a question."""

    def __init__(self, snippet_chars: int = 150, tz: Optional[tzinfo] = None) -> None:
        self._snippet_chars = max(1, snippet_chars)
        self._tz = tz or timezone.utc

    def assemble_context(self, result: RetrievalResult) -> ContextWindow:
        """Truncate every hit to the snippet budget, keeping result order."""

        snippets = []
        for hit in result:
            body = " ".join(hit.record.body_text.split())
            snippets.append(
                ContextSnippet(
                    record_id=hit.record.id,
                    date=hit.record.created_at.astimezone(self._tz).date().isoformat(),
                    relevance_pct=round(hit.relevance * 100),
                    text=body[: self._snippet_chars] or MISSING_TEXT,
                )
            )
        return ContextWindow(snippets=tuple(snippets))

    def build_messages(self, question: str, context: ContextWindow) -> List[dict]:
        """Create the message list for a completion provider."""

        user_prompt = (
            f'The user is asking: "{question}"\n\n'
            f"{context.render()}\n\n"
            "Please respond in a helpful and analytical way:"
        )
        return [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": user_prompt},
        ]
