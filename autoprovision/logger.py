from rich.console import Console
from functools import lru_cache

_verbose = False


@lru_cache(maxsize=1)
def get_console() -> Console:
    """Get or create the shared Console instance"""
    return Console()


def set_verbose(enabled: bool) -> None:
    global _verbose
    _verbose = enabled


def debug(message: str) -> None:
    """Print a dimmed debug line when verbose logging is enabled"""
    if _verbose:
        get_console().print(f"[dim]{message}[/]", highlight=False)


def warn(message: str) -> None:
    get_console().print(f"[yellow]Warning: {message}[/]", highlight=False)
