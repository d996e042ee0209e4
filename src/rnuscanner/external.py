"""Running the samtools binary for the ``samtools`` pileup engine.

Every call captures stdout/stderr as text. Failures surface as
``ExternalCommandError`` carrying the tail of stderr; calls that exceed
their time budget surface as ``ExternalCommandTimeout`` after the child
has been killed.
"""

from __future__ import annotations

import logging
import shlex
import shutil
import subprocess
import textwrap
from typing import Optional, Sequence

logger = logging.getLogger(__name__)


class ExternalCommandError(RuntimeError):
    """Raised when an external command exits non-zero."""

    def __init__(
        self,
        message: str,
        *,
        cmd: Sequence[str],
        returncode: int,
        stderr: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.cmd = list(cmd)
        self.returncode = int(returncode)
        self.stderr = stderr


class ExternalCommandTimeout(ExternalCommandError):
    """Raised when an external command is killed for running too long."""

    def __init__(self, *, cmd: Sequence[str], timeout: float) -> None:
        super().__init__(
            f"Command timed out after {timeout:g}s: {cmd_to_str(cmd)}",
            cmd=cmd,
            returncode=-1,
        )
        self.timeout = float(timeout)


def cmd_to_str(cmd: Sequence[str]) -> str:
    return " ".join(shlex.quote(str(x)) for x in cmd)


def ensure_executable_in_path(exe: str, *, hint: Optional[str] = None) -> str:
    """Return the full path of ``exe`` or raise ``FileNotFoundError``.

    Parameters
    ----------
    exe:
        Name of the executable to find.
    hint:
        Optional install instructions appended to the error message.
    """
    path = shutil.which(exe)
    if path is None:
        msg = f"Required executable '{exe}' was not found in your PATH."
        if hint:
            msg += "\n\n" + hint
        raise FileNotFoundError(msg)
    return path


def run_command(
    cmd: Sequence[str],
    *,
    check: bool = True,
    timeout: Optional[float] = None,
) -> subprocess.CompletedProcess:
    """Run ``cmd`` with captured text output.

    Raises
    ------
    ExternalCommandTimeout
        ``timeout`` seconds elapsed; the child process was killed.
    ExternalCommandError
        ``check`` is True and the command exited non-zero.
    """
    logger.debug("Running command: %s", cmd_to_str(cmd))

    try:
        cp = subprocess.run(
            [str(x) for x in cmd],
            check=False,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            timeout=timeout,
        )
    except subprocess.TimeoutExpired:
        raise ExternalCommandTimeout(cmd=cmd, timeout=float(timeout or 0)) from None

    if check and cp.returncode != 0:
        raise ExternalCommandError(
            message=textwrap.dedent(
                f"""
                External command failed (exit code {cp.returncode}).

                Command:
                  {cmd_to_str(cmd)}

                STDERR (tail):
                  {_tail(cp.stderr)}
                """
            ).strip(),
            cmd=cmd,
            returncode=cp.returncode,
            stderr=cp.stderr,
        )

    return cp


def _tail(s: Optional[str], n: int = 2000) -> str:
    if not s:
        return "(empty)"
    if len(s) <= n:
        return s
    return "..." + s[-n:]
