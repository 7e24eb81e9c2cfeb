import logging
import re

from rich.console import Console
from rich.logging import RichHandler
from rich.theme import Theme

from gridbase.utils.request_id import get_request_id

custom_theme = Theme(
    {
        "info": "dim cyan",
        "warning": "magenta",
        "error": "bold red",
        "table": "bold yellow",
        "row": "bold blue",
        "view": "bold green",
    }
)

console = Console(theme=custom_theme)


class CompactFilter(logging.Filter):
    """Filters log messages to shorten UUIDs and float numbers for technical density."""

    # Regex for UUID (standard 8-4-4-4-12 format)
    UUID_PATTERN = re.compile(
        r"[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}", re.I
    )
    # Regex for long floats (4+ decimal places)
    FLOAT_PATTERN = re.compile(r"(\d+\.\d{4,})")

    def filter(self, record):
        # Render %-style args first so ids passed as arguments are shortened too
        msg = record.getMessage()
        msg = msg.replace("gridbase.adapters.", "")

        request_id = get_request_id()
        if request_id:
            msg = f"[{request_id[:8]}] {msg}"

        def shorten_uuid(match):
            val = match.group(0)
            return f"{val[:4]}.."

        def shorten_float(match):
            val = float(match.group(0))
            return f"{val:.3f}"

        msg = self.UUID_PATTERN.sub(shorten_uuid, msg)
        msg = self.FLOAT_PATTERN.sub(shorten_float, msg)

        record.msg = msg
        record.args = None
        return True


def setup_global_logger(log_level: str = "INFO"):
    """
    Configures the gridbase logger using Rich for readable output.
    """
    logger = logging.getLogger("gridbase")

    level = getattr(logging, log_level.upper(), logging.INFO)
    logger.setLevel(level)

    # Avoid duplicate handlers
    if not any(isinstance(h, RichHandler) for h in logger.handlers):
        rich_handler = RichHandler(
            console=console,
            rich_tracebacks=True,
            markup=False,
            show_path=False,
            show_time=True,
            omit_repeated_times=True,
            keywords=[
                "table",
                "column",
                "row",
                "view",
                "relation",
                "cascade",
            ],
        )

        formatter = logging.Formatter("%(message)s", datefmt="[%X]")
        rich_handler.setFormatter(formatter)
        rich_handler.addFilter(CompactFilter())
        logger.addHandler(rich_handler)

    return logger


# Export a module-level logger for simple imports
logger = logging.getLogger("gridbase")
