"""
PowerShell provisioning routine executed inside the Windows guest.

The routine is kept as a versioned template; values come from GuestSettings
and are substituted as single-quoted PowerShell literals.
"""

import base64
from string import Template
from typing import List

from utmcodex.config import GuestSettings

SCRIPT_VERSION = "1"


class _PowerShellTemplate(Template):
    # PowerShell owns "$", so placeholders use "%".
    delimiter = "%"


PROVISION_TEMPLATE = _PowerShellTemplate(
    r"""# utm-codex guest provisioning v%version
$ErrorActionPreference = 'Stop'
$ProgressPreference = 'SilentlyContinue'

if (-not (Get-Command winget -ErrorAction SilentlyContinue)) {
    throw 'winget is required in the template VM.'
}

winget install -e --id '%runtime_package' --accept-package-agreements --accept-source-agreements
$env:Path = [Environment]::GetEnvironmentVariable('Path', 'Machine') + ';' + [Environment]::GetEnvironmentVariable('Path', 'User')

npm install -g '%cli_package'
if ($LASTEXITCODE -ne 0) { throw "npm install failed with exit code $LASTEXITCODE" }

try {
    Add-WindowsCapability -Online -Name '%ssh_capability' | Out-Null
} catch {
    Write-Host "OpenSSH capability may already be present: $($_.Exception.Message)"
}

Start-Service sshd
Set-Service -Name sshd -StartupType Automatic

if (-not (Get-NetFirewallRule -Name '%firewall_rule_name' -ErrorAction SilentlyContinue)) {
    New-NetFirewallRule -Name '%firewall_rule_name' -DisplayName '%firewall_display_name' -Enabled True -Direction Inbound -Protocol TCP -Action Allow -LocalPort %ssh_port | Out-Null
}

%cli_command --version
exit $LASTEXITCODE
"""
)


def render_script(settings: GuestSettings) -> str:
    """Fill the provisioning template from *settings*."""
    return PROVISION_TEMPLATE.substitute(
        version=SCRIPT_VERSION,
        runtime_package=settings.runtime_package,
        cli_package=settings.cli_package,
        cli_command=settings.cli_command,
        ssh_capability=settings.ssh_capability,
        firewall_rule_name=settings.firewall_rule_name,
        firewall_display_name=settings.firewall_display_name,
        ssh_port=settings.ssh_port,
    )


def encode_command(script: str) -> str:
    """Base64 of the UTF-16LE script, as ``-EncodedCommand`` expects."""
    return base64.b64encode(script.encode("utf-16-le")).decode("ascii")


def remote_command(settings: GuestSettings) -> List[str]:
    """The command line the guest's shell runs to execute the routine."""
    return [
        "powershell",
        "-NoProfile",
        "-NonInteractive",
        "-EncodedCommand",
        encode_command(render_script(settings)),
    ]
