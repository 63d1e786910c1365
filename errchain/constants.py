"""Constants used throughout the errchain library."""

# Maximum number of frames recorded per capture; deeper stacks lose their
# outermost frames.
MAX_STACK_LENGTH = 50

# Frames between the routine taking a capture and the application call site:
# _wrap -> public API function -> caller.
CALLER_OFFSET = 2

SEPARATOR = ": "
FRAME_INDENT = "    "

# Source files that never show up in a resolved trace, besides the package
# itself.
INTERNAL_PATH_PREFIXES = (
    "<frozen importlib",
    "<frozen runpy",
)
