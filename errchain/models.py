"""Data models for annotated error chains."""

import enum
from dataclasses import dataclass, field
from types import CodeType
from typing import Any, Callable, Dict, Iterator, Optional, Tuple


class Kind(enum.Enum):
    """Tag carried by every node of an error chain."""

    RAW = "raw"
    CAPTURED = "captured"
    ANNOTATED = "annotated"


@dataclass(frozen=True)
class CapturedStack:
    """Raw call stack recorded at one point in time, innermost call first.

    Entries are ``(code, lineno)`` pairs; frame objects are not kept so the
    capture does not hold on to their locals.
    """

    entries: Tuple[Tuple[CodeType, int], ...] = ()

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self) -> Iterator[Tuple[CodeType, int]]:
        return iter(self.entries)


@dataclass(frozen=True)
class ResolvedFrame:
    """Source location of one captured frame."""

    source_file: str
    line: int
    function: str

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {"file": self.source_file, "line": self.line, "function": self.function}


@dataclass
class Message:
    """What a formatter receives: the error, the expand flag and its frames.

    Frames are resolved only when a formatter actually reads them.
    """

    err: BaseException
    expand: bool = False
    _resolve: Optional[Callable[[], Tuple[ResolvedFrame, ...]]] = field(
        default=None, repr=False
    )

    @property
    def frames(self) -> Tuple[ResolvedFrame, ...]:
        if self._resolve is None:
            return ()
        return self._resolve()

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"error": str(self.err)}
        if self.expand:
            data["frames"] = [frame.to_dict() for frame in self.frames]
        return data


@dataclass
class ErrorSlot:
    """Mutable reference to an error, or ``None`` when there is none."""

    err: Optional[BaseException] = None
