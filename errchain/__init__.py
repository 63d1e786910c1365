"""
errchain - stack-annotated error chains with per-frame context.

An error gets its call stack captured once, where it is first created or
wrapped. Every function it travels through can then add a line of context
without capturing again, and the whole thing renders either as a one-line
message or as the message followed by the captured source locations.

Example usage:
    >>> import errchain
    >>> def load(path):
    ...     with errchain.trace("load(path=%s)", path) as t:
    ...         t.err = errchain.new("file is empty")
    ...     return t.err
    >>> err = load("config.yaml")
    >>> str(err)
    'load(path=config.yaml): file is empty'
    >>> print(errchain.to_string(err))  # doctest: +SKIP
    load(path=config.yaml): file is empty
        /app/loader.py:3
        /app/main.py:12
"""

from .constants import MAX_STACK_LENGTH, SEPARATOR
from .models import (
    Kind,
    CapturedStack,
    ResolvedFrame,
    Message,
    ErrorSlot,
)
from .core import (
    Error,
    Captured,
    Annotated,
    new,
    errorf,
    wrap,
    wrapf,
    wrap_up,
    catch,
    trace,
    Trace,
    traced,
    to_string,
)
from .formatter import (
    Formatter,
    TextFormatter,
    JSONFormatter,
    set_formatter,
    get_formatter,
)
from .stack import capture_stack, resolve
from .utils import unwrap, walk, is_, as_, find_capture

__version__ = "0.1.0"
__author__ = "errchain"
__email__ = ""
__description__ = "Stack-annotated error chains with per-frame context"

# Main API exports
__all__ = [
    # Creating and annotating errors
    "new",
    "errorf",
    "wrap",
    "wrapf",
    "wrap_up",
    "catch",
    "trace",
    "Trace",
    "traced",
    "to_string",

    # Error nodes
    "Error",
    "Captured",
    "Annotated",

    # Data models
    "Kind",
    "CapturedStack",
    "ResolvedFrame",
    "Message",
    "ErrorSlot",

    # Formatting
    "Formatter",
    "TextFormatter",
    "JSONFormatter",
    "set_formatter",
    "get_formatter",

    # Chain walking
    "unwrap",
    "walk",
    "is_",
    "as_",
    "find_capture",

    # Lower level (primarily for testing and advanced usage)
    "capture_stack",
    "resolve",

    # Constants
    "MAX_STACK_LENGTH",
    "SEPARATOR",

    # Version info
    "__version__",
]


# Example usage function
def demo() -> None:
    """
    Demonstrate the library with a two-level call chain.
    """
    invalid_argument = ValueError("invalid argument")

    def do_another_stuff(b: int):
        with trace("doAnotherStuff(b=%d)", b) as t:
            if b <= 0:
                t.err = invalid_argument
        return t.err

    def do_stuff(a: str, b: int):
        with trace("doStuff(a=%s, b=%d)", a, b) as t:
            t.err = do_another_stuff(b)
        return t.err

    err = do_stuff("World", -1)

    print("=== MESSAGE ===")
    print(err)

    print("\n=== TRACE ===")
    print(to_string(err))

    print("\n=== JSON ===")
    set_formatter(JSONFormatter(indent=2))
    try:
        print(to_string(err))
    finally:
        set_formatter(None)

    print("\nmatches sentinel:", is_(err, invalid_argument))


if __name__ == "__main__":
    demo()
