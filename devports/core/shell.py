"""Thin wrapper over subprocess for the OS utilities the core shells out to."""

import logging
import subprocess

logger = logging.getLogger(__name__)


class CommandFailed(Exception):
    """An external utility was missing, timed out, or exited non-zero."""

    def __init__(self, args: list[str], reason: str, returncode: int | None = None):
        super().__init__(f"{args[0]}: {reason}")
        self.args_list = args
        self.reason = reason
        self.returncode = returncode


def run_command(args: list[str], timeout: float | None = None) -> str:
    """Run *args* synchronously and return stdout.

    *timeout* of None waits for the utility indefinitely.
    """
    logger.debug("Running %s", " ".join(args))
    try:
        result = subprocess.run(
            args,
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except FileNotFoundError:
        raise CommandFailed(args, "command not found") from None
    except subprocess.TimeoutExpired:
        raise CommandFailed(args, f"timed out after {timeout}s") from None
    except OSError as e:
        raise CommandFailed(args, str(e)) from e

    if result.returncode != 0:
        detail = (result.stderr or "").strip() or f"exit code {result.returncode}"
        raise CommandFailed(args, detail, result.returncode)
    return result.stdout or ""
