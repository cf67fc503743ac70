"""Thin wrapper around UTM's ``utmctl`` control utility."""

import subprocess
from pathlib import Path
from typing import Optional, Union

import structlog

from utmcodex.errors import ProvisionError
from utmcodex.interfaces.process import ProcessRunner

log = structlog.get_logger(__name__)

IP_QUERY_TIMEOUT = 30


def first_address(output: str) -> Optional[str]:
    """First whitespace token of the first non-empty line, if any."""
    for line in output.splitlines():
        fields = line.split()
        if fields:
            return fields[0]
    return None


class UtmCtl:
    """Invoke utmctl sub-commands against VM bundles."""

    def __init__(self, executable: Path, runner: ProcessRunner):
        self.executable = executable
        self.runner = runner

    def _cmd(self, *args: Union[str, Path]):
        return [str(self.executable)] + [str(a) for a in args]

    def clone(self, source: Path, destination: Path) -> None:
        self.runner.run(self._cmd("clone", source, destination), capture_output=False)

    def start(self, vm: Path) -> None:
        self.runner.run(self._cmd("start", vm), capture_output=False)

    def ip_address(self, vm: Path) -> Optional[str]:
        """Ask the guest agent for an address; None while it is not ready."""
        try:
            result = self.runner.run(
                self._cmd("ip-address", vm), check=False, timeout=IP_QUERY_TIMEOUT
            )
        except (subprocess.TimeoutExpired, OSError, ProvisionError) as e:
            log.debug("ip_query_error", vm=str(vm), error=str(e))
            return None

        if not result.success:
            log.debug("ip_query_not_ready", vm=str(vm), rc=result.returncode)
            return None
        return first_address(result.stdout)
