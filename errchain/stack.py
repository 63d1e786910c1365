"""Stack capture and frame resolution."""

import logging
import os
import sys
from typing import Tuple

from .constants import INTERNAL_PATH_PREFIXES, MAX_STACK_LENGTH
from .models import CapturedStack, ResolvedFrame

logger = logging.getLogger(__name__)

_PACKAGE_DIR = os.path.dirname(os.path.abspath(__file__)) + os.sep


def capture_stack(skip: int = 0, limit: int = MAX_STACK_LENGTH) -> CapturedStack:
    """
    Record the current call stack, innermost call first.

    Parameters:
      skip: number of frames to skip above the caller of capture_stack.
        0 starts the capture at the function calling capture_stack.
      limit: maximum number of entries kept; outermost frames are dropped.

    Returns:
      A CapturedStack. A stack shallower than ``skip`` gives an empty one.
    """
    try:
        frame = sys._getframe(skip + 1)
    except ValueError:
        return CapturedStack()

    entries = []
    while frame is not None and len(entries) < limit:
        entries.append((frame.f_code, frame.f_lineno))
        frame = frame.f_back
    return CapturedStack(tuple(entries))


def _is_internal(path: str) -> bool:
    if path.startswith(INTERNAL_PATH_PREFIXES):
        return True
    return os.path.abspath(path).startswith(_PACKAGE_DIR)


def resolve(stack: CapturedStack) -> Tuple[ResolvedFrame, ...]:
    """
    Turn a captured stack into source locations, keeping capture order.

    Frames belonging to errchain itself are left out so traces only show
    application code.
    """
    frames = []
    for code, lineno in stack:
        if _is_internal(code.co_filename):
            continue
        frames.append(
            ResolvedFrame(
                source_file=code.co_filename,
                line=lineno,
                function=code.co_name,
            )
        )
    logger.debug("resolved %d of %d captured frames", len(frames), len(stack))
    return tuple(frames)
