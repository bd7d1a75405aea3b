"""Color definitions for console output.

Rich color names shared by the CLI helpers and the summary table.
"""


class MigrationColors:
    """Centralized color palette for Convex Bridge console output.

    Reference: https://rich.readthedocs.io/en/stable/appendix/colors.html
    """

    INFO = "cyan"
    SUCCESS = "green"
    WARNING = "yellow"
    ERROR = "red"
    DEBUG = "dim"

    PHASE = "magenta"
    SPINNER = "dark_slate_gray1"
    SKIPPED = "dark_orange"

    RESOURCE_COUNT = "bright_cyan"

    BORDER = "blue"
    HEADER = "bold bright_white"
    LABEL = "bold"
