"""Core functionality: capture-holders, context-layers and the annotation API."""

import functools
import inspect
import logging
from types import TracebackType
from typing import Any, Callable, Dict, Optional, Tuple, Type, TypeVar

from .constants import CALLER_OFFSET, SEPARATOR
from .formatter import render
from .models import CapturedStack, ErrorSlot, Kind, ResolvedFrame
from .stack import capture_stack, resolve
from .utils import find_capture, safe_interpolate

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])


class Error(Exception):
    """
    Base class of every error produced by errchain.

    Used directly it is a plain message error: ``new``, ``errorf``, ``wrapf``
    and ``catch`` build one for their message text, chained to the error it
    embeds through ``__cause__``.
    """

    kind = Kind.RAW

    def __init__(self, message: str = "", cause: Optional[BaseException] = None) -> None:
        # not super(): a raised-as subclass puts a foreign __init__ next in line
        Exception.__init__(self, message)
        self.__cause__ = cause

    def __reduce__(self):
        message = self.args[0] if self.args else ""
        return (type(self), (message, self.__cause__), self.__dict__ or None)


class Captured(Error):
    """Holds the chain's single stack capture and the error it was taken for."""

    kind = Kind.CAPTURED

    def __init__(self, inner: BaseException, stack: CapturedStack) -> None:
        super().__init__(str(inner), cause=inner)
        self.inner = inner
        self.stack = stack
        self._frames: Optional[Tuple[ResolvedFrame, ...]] = None

    @classmethod
    def create(cls, err: BaseException, skip: int = 0) -> "Captured":
        """Wrap ``err`` with the current stack, skipping ``skip`` frames above the caller."""
        return cls(err, capture_stack(skip + 1))

    def unwrap(self) -> BaseException:
        return self.inner

    def __str__(self) -> str:
        return str(self.inner)

    def __reduce__(self):
        # code objects do not pickle; ship the resolved frames instead
        return (_restore_captured, (self.inner, self.frames()))

    def has_trace(self) -> bool:
        return len(self.stack) > 0 or bool(self._frames)

    def frames(self) -> Tuple[ResolvedFrame, ...]:
        # resolution is deterministic, so a concurrent double write is harmless
        if self._frames is None:
            self._frames = resolve(self.stack)
        return self._frames

    def short_message(self) -> str:
        return render(self, self, expand=False)

    def expanded_trace(self) -> str:
        return render(self, self, expand=True)


class Annotated(Error):
    """A context layer over an error whose chain already has its capture."""

    kind = Kind.ANNOTATED

    # foreign exception class a raised-as subclass also derives from
    raised_as: Optional[Type[BaseException]] = None

    def __init__(self, inner: BaseException, holder: Optional[Captured]) -> None:
        super().__init__(str(inner), cause=inner)
        self.inner = inner
        self.holder = holder

    def unwrap(self) -> BaseException:
        return self.inner

    def __str__(self) -> str:
        return str(self.inner)

    def __reduce__(self):
        state = {k: v for k, v in self.__dict__.items() if k not in ("inner", "holder")}
        return (_restore_annotated, (self.raised_as, self.inner, self.holder), state or None)

    def short_message(self) -> str:
        """The annotated message, rendered by the active formatter."""
        return render(self, self.holder, expand=False)

    def expanded_trace(self) -> str:
        """The message followed by the captured frames, when there are any."""
        return render(self, self.holder, expand=True)


_raised_as_types: Dict[type, type] = {}


def _annotated_type(cls: Type[BaseException]) -> type:
    """
    Return a subclass of both ``Annotated`` and ``cls``.

    Raised errors keep matching ``except cls:`` clauses this way. Falls back
    to plain ``Annotated`` when ``cls`` cannot be combined with it.
    """
    if issubclass(cls, Annotated):
        return cls
    if issubclass(cls, Error) or not issubclass(cls, Exception):
        return Annotated
    annotated = _raised_as_types.get(cls)
    if annotated is None:
        name = f"Annotated{cls.__name__}"
        try:
            annotated = type(name, (Annotated, cls), {
                "__module__": __name__,
                "__qualname__": name,
                "raised_as": cls,
            })
        except TypeError as exc:
            logger.debug("cannot derive from %s, raising plain Annotated: %s", cls.__name__, exc)
            annotated = Annotated
        _raised_as_types[cls] = annotated
    return annotated


def _layer_of(
    raised_as: Optional[Type[BaseException]],
    inner: BaseException,
    holder: Optional[Captured],
) -> Annotated:
    if raised_as is None:
        return Annotated(inner, holder)
    cls = _annotated_type(raised_as)
    try:
        return cls(inner, holder)
    except TypeError as exc:
        logger.debug("cannot build %s, raising plain Annotated: %s", cls.__name__, exc)
        return Annotated(inner, holder)


def _layer(
    inner: BaseException,
    holder: Optional[Captured],
    like: Optional[BaseException] = None,
) -> Annotated:
    if like is None:
        return Annotated(inner, holder)
    node = _layer_of(type(like), inner, holder)
    if type(node) is not Annotated:
        # attributes of the original stay reachable, except where they
        # would shadow the node's own
        for key, value in vars(like).items():
            if key not in node.__dict__ and not hasattr(Annotated, key):
                node.__dict__[key] = value
    return node


def _restore_captured(inner: BaseException, frames: Tuple[ResolvedFrame, ...]) -> Captured:
    holder = Captured(inner, CapturedStack())
    holder._frames = frames
    return holder


def _restore_annotated(
    raised_as: Optional[Type[BaseException]],
    inner: BaseException,
    holder: Optional[Captured],
) -> Annotated:
    return _layer_of(raised_as, inner, holder)


def _wrap(
    err: Optional[BaseException],
    offset: int,
    like: Optional[BaseException] = None,
) -> Optional[BaseException]:
    if err is None:
        return None

    holder = find_capture(err)
    if holder is not None:
        return _layer(err, holder, like)

    holder = Captured.create(err, CALLER_OFFSET + offset)
    logger.debug("captured %d frames for %s", len(holder.stack), type(err).__name__)
    return _layer(holder, holder, like)


def _annotate(
    err: BaseException,
    context: str,
    offset: int,
    like: Optional[BaseException] = None,
) -> Optional[BaseException]:
    return _wrap(Error(f"{context}{SEPARATOR}{err}", cause=err), offset + 1, like)


def new(message: str) -> Annotated:
    """Create an error with ``message`` and capture the stack here."""
    return _wrap(Error(message), 0)


def errorf(format: str, *args: Any) -> Annotated:
    """
    Create an error from a %-style format and capture the stack here.

    ``%w`` formats an error argument like ``%s`` and chains it as the cause;
    if that error already carries a capture it is reused.
    """
    message, wrapped = safe_interpolate(format, args)
    return _wrap(Error(message, cause=wrapped), 0)


def wrap(err: Optional[BaseException]) -> Optional[BaseException]:
    """Annotate ``err`` with a stack capture unless its chain has one already."""
    return _wrap(err, 0)


def wrap_up(err: Optional[BaseException]) -> Optional[BaseException]:
    """Like ``wrap``, for helpers: the capture starts at the helper's caller."""
    return _wrap(err, 1)


def wrapf(err: Optional[BaseException], format: str, *args: Any) -> Optional[BaseException]:
    """Prefix ``err``'s message with formatted context and wrap it."""
    if err is None:
        return None
    context, _ = safe_interpolate(format, args)
    return _annotate(err, context, 0)


def catch(slot: ErrorSlot, format: str, *args: Any) -> None:
    """
    Prefix the error held by ``slot`` with formatted context, in place.

    Nothing happens when the slot is empty, so this can run on every exit
    path of a function, including the successful ones.
    """
    if slot.err is None:
        return
    context, _ = safe_interpolate(format, args)
    slot.err = _annotate(slot.err, context, 0)


class Trace(ErrorSlot):
    """
    Guard annotating whatever error leaves its block.

    An exception raised inside the block is annotated and re-raised as an
    instance of its original class too, so ``except`` clauses still match.
    Otherwise the error stored in ``.err`` (if any) is annotated in place.

        def do_stuff(a, b):
            with trace("do_stuff(a=%s, b=%d)", a, b) as t:
                t.err = do_another_stuff(b)
            return t.err
    """

    def __init__(self, format: str, *args: Any) -> None:
        super().__init__()
        self.format = format
        self.args = args

    def __enter__(self) -> "Trace":
        return self

    def __exit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc: Optional[BaseException],
        tb: Optional[TracebackType],
    ) -> bool:
        if exc is None:
            if self.err is not None:
                context, _ = safe_interpolate(self.format, self.args)
                self.err = _annotate(self.err, context, 0)
            return False
        if not isinstance(exc, Exception):
            return False
        context, _ = safe_interpolate(self.format, self.args)
        raise _annotate(exc, context, 0, like=exc)


def trace(format: str, *args: Any) -> Trace:
    """Return a ``Trace`` guard for the current function."""
    return Trace(format, *args)


def traced(format: str) -> Callable[[F], F]:
    """
    Decorate a function so errors leaving it carry context about the call.

    ``format`` uses ``str.format`` fields named after the parameters, e.g.
    ``@traced("fetch(url={url})")``. Raised exceptions are annotated and
    re-raised, still matching their original class; a returned exception
    instance is annotated and returned. A format that does not fit the call
    falls back to the raw format followed by the arguments.
    """

    def decorator(func: F) -> F:
        signature = inspect.signature(func)

        def describe(args: Tuple[Any, ...], kwargs: dict) -> str:
            try:
                bound = signature.bind(*args, **kwargs)
                bound.apply_defaults()
                return format.format(**bound.arguments)
            except Exception as exc:
                logger.debug("could not format %r for %s: %s", format, func.__qualname__, exc)
                return f"{format} {args!r} {kwargs!r}" if kwargs else f"{format} {args!r}"

        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            try:
                result = func(*args, **kwargs)
            except Exception as exc:
                raise _annotate(exc, describe(args, kwargs), 0, like=exc)
            if isinstance(result, BaseException):
                return _annotate(result, describe(args, kwargs), 0)
            return result

        return wrapper  # type: ignore[return-value]

    return decorator


def to_string(err: Optional[BaseException]) -> str:
    """
    Render the full trace of ``err``: message plus captured frames.

    Works for any error whose chain holds a capture, including foreign
    wrappers around an annotated error. Without a capture the plain message
    is returned; ``None`` gives an empty string.
    """
    if err is None:
        return ""
    return render(err, find_capture(err), expand=True)
