"""Subprocess process runner implementation."""

import shutil
import subprocess
from pathlib import Path
from typing import Dict, List, Optional

import structlog

from ..errors import PreconditionError, ToolInvocationError
from ..interfaces.process import ProcessResult, ProcessRunner

log = structlog.get_logger(__name__)


def require_commands(*names: str) -> None:
    """Fail fast if any of *names* is not on PATH."""
    for name in names:
        if shutil.which(name) is None:
            raise PreconditionError(f"Missing required command: {name}")


class SubprocessRunner(ProcessRunner):
    """Run processes using the subprocess module."""

    def run(
        self,
        command: List[str],
        capture_output: bool = True,
        timeout: Optional[float] = None,
        check: bool = True,
        cwd: Optional[Path] = None,
        env: Optional[Dict[str, str]] = None,
    ) -> ProcessResult:
        """Run a command.

        With ``capture_output=False`` the child inherits the terminal and the
        returned stdout/stderr are empty.
        """
        log.debug("process_run", command=command, timeout=timeout)
        try:
            result = subprocess.run(
                command,
                capture_output=capture_output,
                timeout=timeout,
                cwd=str(cwd) if cwd else None,
                env=env,
                text=True,
            )
        except FileNotFoundError:
            raise PreconditionError(f"Missing required command: {command[0]}")

        if check and result.returncode != 0:
            raise ToolInvocationError(command, result.returncode, result.stderr)

        return ProcessResult(
            returncode=result.returncode,
            stdout=result.stdout or "",
            stderr=result.stderr or "",
        )
