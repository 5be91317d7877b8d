# ZenSync Output Module
# Rich console output

from zensync.output.console import Console, create_console

__all__ = [
    "Console",
    "create_console",
]
