"""Utility functions for walking error chains."""

import logging
import re
from collections.abc import Mapping
from typing import Any, Generator, Optional, Tuple, Type, TypeVar

from .models import Kind

logger = logging.getLogger(__name__)

E = TypeVar("E", bound=BaseException)

# printf-style directive: flags, width, precision, conversion
_DIRECTIVE = re.compile(r"%(\([^)]*\))?[#0\- +]*(\*|\d+)?(?:\.(\*|\d+))?([a-zA-Z%])")


def unwrap(err: Optional[BaseException]) -> Optional[BaseException]:
    """
    Return the error wrapped by ``err``, one level down.

    Errors providing an ``unwrap()`` method are asked directly; anything else
    falls back to the explicit exception chain (``__cause__``).
    """
    if err is None:
        return None
    method = getattr(err, "unwrap", None)
    if callable(method):
        return method()
    return err.__cause__


def walk(err: Optional[BaseException]) -> Generator[BaseException, None, None]:
    """Yield ``err`` and every error it wraps, outermost first."""
    visited = set()
    current = err
    while current is not None and id(current) not in visited:
        visited.add(id(current))
        yield current
        current = unwrap(current)


def kind_of(err: Optional[BaseException]) -> Kind:
    # errors from other libraries carry no tag
    return getattr(err, "kind", Kind.RAW)


def find_capture(err: Optional[BaseException]) -> Optional[BaseException]:
    """
    Return the capture-holder of the chain, or ``None`` if there is none.

    Stops at the first tagged node: a context-layer already knows its holder.
    """
    for node in walk(err):
        kind = kind_of(node)
        if kind is Kind.CAPTURED:
            return node
        if kind is Kind.ANNOTATED:
            return node.holder
    return None


def is_(err: Optional[BaseException], target: BaseException) -> bool:
    """
    Report whether any error in the chain is ``target``.

    An error defining its own ``is_(target)`` method may claim a match too.
    """
    for node in walk(err):
        if node is target:
            return True
        method = getattr(node, "is_", None)
        if callable(method) and method(target):
            return True
    return False


def as_(err: Optional[BaseException], cls: Type[E]) -> Optional[E]:
    """Return the first error in the chain that is an instance of ``cls``."""
    for node in walk(err):
        if isinstance(node, cls):
            return node
    return None


def interpolate(format: str, args: Tuple[Any, ...]) -> Tuple[str, Optional[BaseException]]:
    """
    %-format ``args`` into ``format``, supporting a ``%w`` directive.

    ``%w`` renders its argument like ``%s`` and marks it as the wrapped
    error. Only the first ``%w`` exception is returned. Without args the
    format is returned as is, and a single mapping argument is used for
    ``%(name)s`` lookups, like the ``logging`` module does.

    Returns:
      A ``(message, wrapped)`` tuple; ``wrapped`` is None when nothing was
      wrapped.
    """
    if not args:
        return format, None

    values: Any = args
    if len(args) == 1 and isinstance(args[0], Mapping) and args[0]:
        values = args[0]

    wrapped = None
    position = 0
    pieces = []
    last = 0
    for match in _DIRECTIVE.finditer(format):
        mapping, width, precision, conversion = match.groups()
        if conversion == "%":
            continue
        if mapping is None:
            # '*' width or precision consumes an argument of its own
            position += (width == "*") + (precision == "*")
        if conversion == "w":
            if mapping is not None and values is not args:
                arg = values.get(mapping[1:-1])
            elif mapping is None and position < len(args):
                arg = args[position]
            else:
                arg = None
            if wrapped is None and isinstance(arg, BaseException):
                wrapped = arg
            pieces.append(format[last:match.end() - 1])
            pieces.append("s")
            last = match.end()
        if mapping is None:
            position += 1
    pieces.append(format[last:])
    return "".join(pieces) % values, wrapped


def safe_interpolate(format: str, args: Tuple[Any, ...]) -> Tuple[str, Optional[BaseException]]:
    """
    Like ``interpolate``, but never raises.

    Context is formatted while an error is already on its way out, so a bad
    format must not replace that error. On failure the raw format is kept
    with the arguments' repr, and the first error argument is still chained.
    """
    try:
        return interpolate(format, args)
    except Exception as exc:
        logger.debug("could not format %r with %r: %s", format, args, exc)
        wrapped = next((arg for arg in args if isinstance(arg, BaseException)), None)
        return f"{format} {args!r}", wrapped
