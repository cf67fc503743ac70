"""
SSH helpers for reaching the freshly cloned guest.

Host-key checking is disabled on purpose: the clone is new, operator-owned
and its key is not known yet.
"""

from typing import List, Optional

import structlog

from utmcodex.backends.subprocess_runner import require_commands
from utmcodex.config import GuestSettings
from utmcodex.errors import GuestProvisioningError
from utmcodex.guest_script import remote_command
from utmcodex.interfaces.process import ProcessRunner

log = structlog.get_logger(__name__)

# ── default SSH flags ────────────────────────────────────────────────────────

DEFAULT_SSH_OPTS: List[str] = [
    "-o", "StrictHostKeyChecking=no",
    "-o", "UserKnownHostsFile=/dev/null",
]


def build_ssh_command(
    username: str,
    host: str,
    connect_timeout: int = 10,
    port: Optional[int] = None,
    log_level: Optional[str] = "ERROR",
) -> List[str]:
    """Build the base ``ssh`` argv for ``username@host``.

    >>> build_ssh_command("codex", "192.168.64.5")[-1]
    'codex@192.168.64.5'
    """
    cmd: List[str] = ["ssh"] + list(DEFAULT_SSH_OPTS)
    cmd.extend(["-o", f"ConnectTimeout={connect_timeout}"])
    if log_level:
        cmd.extend(["-o", f"LogLevel={log_level}"])
    if port is not None and port != 22:
        cmd.extend(["-p", str(port)])
    cmd.append(f"{username}@{host}")
    return cmd


def provision_guest(
    runner: ProcessRunner,
    host: str,
    username: str,
    settings: GuestSettings,
    connect_timeout: int = 10,
) -> None:
    """Run the guest provisioning routine over SSH.

    Output goes straight to the operator's terminal.
    """
    require_commands("ssh")

    log.info("Installing Codex CLI inside the guest", host=host, user=username)
    cmd = build_ssh_command(username, host, connect_timeout=connect_timeout)
    cmd.extend(remote_command(settings))

    result = runner.run(cmd, capture_output=False, check=False)
    if not result.success:
        raise GuestProvisioningError(host, result.returncode)
