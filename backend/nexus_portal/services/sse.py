"""
Server-sent events: an incremental parser for OpenAI-style chat completion
streams and the encoder used for the responses this API streams itself.
"""

import json
import logging
from enum import Enum
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

DATA_PREFIX = "data: "
DONE_MARKER = "[DONE]"
DONE_EVENT = f"{DATA_PREFIX}{DONE_MARKER}\n\n"
SSE_HEADERS = {"Cache-Control": "no-cache", "X-Accel-Buffering": "no"}


class ParserState(str, Enum):
    AWAITING_LINE = "awaiting_line"
    ACCUMULATING_PARTIAL = "accumulating_partial"
    DONE = "done"


def encode_event(payload: Dict[str, Any]) -> str:
    return f"{DATA_PREFIX}{json.dumps(payload, ensure_ascii=False)}\n\n"


def extract_content(payload: Any) -> Optional[str]:
    """choices[0].delta.content of a chat completion chunk, if any."""
    try:
        return payload["choices"][0]["delta"].get("content")
    except (KeyError, IndexError, TypeError, AttributeError):
        return None


class SSEParser:
    """
    Feed raw text chunks in, get content tokens out.

    Lines are split on '\\n' with a trailing '\\r' stripped. Comment lines
    (leading ':') and blank lines are skipped, lines that are not 'data: '
    are ignored, and 'data: [DONE]' moves the parser to DONE, after which
    input is discarded. A data payload that is not valid JSON yet is kept as
    a partial; while it is pending every non-blank line that is not 'data: '
    is appended to it, even one starting with ':'. A new 'data: ' line
    arriving while a partial is pending means the partial was malformed and
    it is dropped.
    """

    def __init__(self):
        self.state = ParserState.AWAITING_LINE
        self._buffer = ""
        self._partial = ""

    @property
    def done(self) -> bool:
        return self.state is ParserState.DONE

    def feed(self, chunk: str) -> List[str]:
        if self.done:
            return []
        self._buffer += chunk
        tokens: List[str] = []
        while not self.done:
            newline = self._buffer.find("\n")
            if newline == -1:
                break
            line = self._buffer[:newline]
            self._buffer = self._buffer[newline + 1:]
            self._handle_line(line, tokens)
        return tokens

    def finish(self) -> List[str]:
        """Flush a trailing line that never got its newline."""
        tokens: List[str] = []
        if not self.done and self._buffer:
            line, self._buffer = self._buffer, ""
            self._handle_line(line, tokens)
        if self.state is ParserState.ACCUMULATING_PARTIAL:
            logger.warning("Dropping incomplete SSE payload (%d chars)", len(self._partial))
            self._partial = ""
            self.state = ParserState.AWAITING_LINE
        return tokens

    def _handle_line(self, line: str, tokens: List[str]) -> None:
        if line.endswith("\r"):
            line = line[:-1]

        if line.startswith(DATA_PREFIX):
            if self.state is ParserState.ACCUMULATING_PARTIAL:
                logger.warning("Discarding malformed SSE payload: %.80s", self._partial)
                self._partial = ""
                self.state = ParserState.AWAITING_LINE
            payload = line[len(DATA_PREFIX):].strip()
            if payload == DONE_MARKER:
                self.state = ParserState.DONE
                self._buffer = ""
                return
            self._parse(payload, tokens)
        elif self.state is ParserState.ACCUMULATING_PARTIAL:
            # a continuation may itself start with ':'
            if line:
                self._parse(self._partial + line, tokens)

    def _parse(self, payload: str, tokens: List[str]) -> None:
        try:
            parsed = json.loads(payload)
        except json.JSONDecodeError:
            self._partial = payload
            self.state = ParserState.ACCUMULATING_PARTIAL
            return
        self._partial = ""
        self.state = ParserState.AWAITING_LINE
        content = extract_content(parsed)
        if content:
            tokens.append(content)
