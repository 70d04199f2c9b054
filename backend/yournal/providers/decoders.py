from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Optional

from yournal.providers.base import ProviderError

logger = logging.getLogger(__name__)


class IncrementDecoder(ABC):
    """Turn raw upstream text chunks into generated text increments.

    Decoders are stateful per stream: a chunk may end mid-line, so only the
    trailing partial line is held back until the next ``feed``.
    """

    def __init__(self) -> None:
        self._buffer = ""
        self.done = False

    def feed(self, chunk: str) -> list[str]:
        """Decode every complete line in ``chunk`` (plus any held-back prefix)."""

        if self.done:
            return []
        self._buffer += chunk
        lines = self._buffer.split("\n")
        self._buffer = lines.pop()
        return self._decode_lines(lines)

    def flush(self) -> list[str]:
        """Decode whatever is left once the upstream stream has ended."""

        remainder, self._buffer = self._buffer, ""
        if self.done or not remainder.strip():
            return []
        return self._decode_lines([remainder])

    def _decode_lines(self, lines: list[str]) -> list[str]:
        increments: list[str] = []
        for raw in lines:
            if self.done:
                break
            line = raw.strip()
            if not line:
                continue
            text = self._decode_line(line)
            if text:
                increments.append(text)
        return increments

    @abstractmethod
    def _decode_line(self, line: str) -> Optional[str]:
        """Return the text carried by one non-blank line, if any."""


class NDJSONDecoder(IncrementDecoder):
    """Newline-delimited JSON objects, as streamed by Ollama."""

    def _decode_line(self, line: str) -> Optional[str]:
        payload = _parse_json(line)
        if payload is None:
            return None
        _raise_for_error(payload)
        if payload.get("done") is True:
            self.done = True
        text = payload.get("response")
        if isinstance(text, str) and text:
            return text
        message = payload.get("message")
        if isinstance(message, dict):
            content = message.get("content")
            if isinstance(content, str) and content:
                return content
        return None


class SSEDecoder(IncrementDecoder):
    """``data:``-prefixed Server-Sent-Event lines from OpenAI-compatible APIs."""

    DONE_SENTINEL = "[DONE]"

    def _decode_line(self, line: str) -> Optional[str]:
        if not line.startswith("data:"):
            # Comments, event names and ids carry no text.
            return None
        data = line[len("data:"):].strip()
        if data == self.DONE_SENTINEL:
            self.done = True
            return None
        payload = _parse_json(data)
        if payload is None:
            return None
        _raise_for_error(payload)
        choices = payload.get("choices")
        if not isinstance(choices, list) or not choices:
            return None
        choice = choices[0] if isinstance(choices[0], dict) else {}
        for key in ("delta", "message"):
            part = choice.get(key)
            if isinstance(part, dict):
                content = part.get("content")
                if isinstance(content, str) and content:
                    return content
        return None


def _parse_json(line: str) -> Optional[dict[str, Any]]:
    try:
        payload = json.loads(line)
    except ValueError:
        logger.debug("Skipping malformed stream line: %.120s", line)
        return None
    if not isinstance(payload, dict):
        logger.debug("Skipping non-object stream line: %.120s", line)
        return None
    return payload


def _raise_for_error(payload: dict[str, Any]) -> None:
    error = payload.get("error")
    if not error:
        return
    if isinstance(error, dict):
        error = error.get("message") or error.get("code") or "unknown error"
    raise ProviderError("PROVIDER_STREAM_ERROR", f"Provider stream error: {error}")
