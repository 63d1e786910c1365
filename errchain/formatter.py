"""Formatting strategies for annotated errors.

The active formatter is process-wide. Set it once at startup, before errors
are formatted from several threads; swapping it while other threads render
is not synchronized.
"""

import json
import logging
from typing import Optional, Protocol, runtime_checkable

from .constants import FRAME_INDENT
from .models import Message

logger = logging.getLogger(__name__)


@runtime_checkable
class Formatter(Protocol):
    """Anything with a ``format(message) -> str`` method."""

    def format(self, message: Message) -> str:
        ...


class TextFormatter:
    """Plain text: the message, then one indented ``file:line`` per frame."""

    def format(self, message: Message) -> str:
        if not message.expand:
            return str(message.err)

        lines = [str(message.err)]
        for frame in message.frames:
            lines.append(f"{FRAME_INDENT}{frame.source_file}:{frame.line}")
        return "\n".join(lines)


class JSONFormatter:
    """Machine-parseable output, one JSON object per error."""

    def __init__(self, *, indent: Optional[int] = None) -> None:
        self.indent = indent

    def format(self, message: Message) -> str:
        return json.dumps(message.to_dict(), ensure_ascii=False, indent=self.indent)


_DEFAULT_FORMATTER = TextFormatter()
_formatter: Formatter = _DEFAULT_FORMATTER


def set_formatter(formatter: Optional[Formatter]) -> None:
    """
    Replace the process-wide formatter. ``None`` restores the default.

    Raises:
      TypeError: if ``formatter`` has no callable ``format`` method.
    """
    global _formatter
    if formatter is None:
        formatter = _DEFAULT_FORMATTER
    if not callable(getattr(formatter, "format", None)):
        raise TypeError(
            f"formatter must provide a format(message) method, got {type(formatter).__name__}"
        )
    logger.debug("errchain formatter set to %s", type(formatter).__name__)
    _formatter = formatter


def get_formatter() -> Formatter:
    return _formatter


def render(err: BaseException, holder=None, expand: bool = False) -> str:
    """
    Render ``err`` through the active formatter.

    Frames come from ``holder`` (a capture-holder) and are resolved only if
    the formatter reads them. Expansion is dropped when there is no holder or
    its stack is empty.
    """
    if expand and (holder is None or not holder.has_trace()):
        logger.debug("no captured stack for %r, rendering plain message", err)
        expand = False
    resolver = holder.frames if holder is not None else None
    message = Message(err=err, expand=expand, _resolve=resolver)
    return _formatter.format(message)
