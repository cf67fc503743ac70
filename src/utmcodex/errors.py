"""Exception hierarchy for utm-codex.

Library code raises these; only the CLI turns them into exit codes.
"""

from typing import List, Optional


class ProvisionError(Exception):
    """Base class for every fatal pipeline error."""


class ConfigError(ProvisionError):
    """Invalid flags, config file or field values."""


class PreconditionError(ProvisionError):
    """A required host tool, template or free target path is missing."""


class FetchError(ProvisionError):
    """Release lookup or download failed."""


class ToolInvocationError(ProvisionError):
    """An external tool exited with a nonzero status."""

    def __init__(
        self,
        command: List[str],
        returncode: int,
        stderr: Optional[str] = None,
    ):
        self.command = list(command)
        self.returncode = returncode
        self.stderr = (stderr or "").strip()
        message = f"Command failed with exit status {returncode}: {' '.join(self.command)}"
        if self.stderr:
            message += f": {self.stderr}"
        super().__init__(message)


class AddressTimeoutError(ProvisionError):
    """The guest never reported a network address."""


class GuestProvisioningError(ProvisionError):
    """The remote provisioning session exited with a nonzero status."""

    def __init__(self, host: str, returncode: int):
        self.host = host
        self.returncode = returncode
        super().__init__(
            f"Provisioning inside the guest at {host} failed (ssh exit status {returncode})"
        )
