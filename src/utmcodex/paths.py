"""
Canonical path helpers for the UTM install, its VM library and utmctl.

Every module that needs to locate UTM artifacts should import from here
instead of computing paths inline.
"""

import os
from pathlib import Path

import structlog

from utmcodex.errors import PreconditionError

log = structlog.get_logger(__name__)

DEFAULT_UTM_APP = "/Applications/UTM.app"
DEFAULT_TEMPLATE_NAME = "WindowsBase.utm"
VM_BUNDLE_SUFFIX = ".utm"


# ── directory roots ──────────────────────────────────────────────────────────

def utm_app_path() -> Path:
    """/Applications/UTM.app unless ``UTM_CODEX_APP`` says otherwise."""
    return Path(os.getenv("UTM_CODEX_APP", DEFAULT_UTM_APP)).expanduser()


def utm_data_dir() -> Path:
    """~/Documents/UTM, the directory UTM keeps its VM bundles in."""
    return Path(
        os.getenv("UTM_CODEX_DIR", str(Path.home() / "Documents" / "UTM"))
    ).expanduser()


def default_template_path() -> Path:
    """Template bundle the operator prepared once in the UTM GUI."""
    return utm_data_dir() / DEFAULT_TEMPLATE_NAME


def vm_bundle_path(utm_dir: Path, vm_name: str) -> Path:
    """Path of the ``<name>.utm`` bundle for a VM inside *utm_dir*."""
    return utm_dir / f"{vm_name}{VM_BUNDLE_SUFFIX}"


# ── utmctl ───────────────────────────────────────────────────────────────────

def utmctl_path(utm_app: Path) -> Path:
    """Return the utmctl binary shipped inside *utm_app*.

    Raises PreconditionError when it is missing or not executable.
    """
    p = utm_app / "Contents" / "MacOS" / "utmctl"
    if not (p.is_file() and os.access(p, os.X_OK)):
        raise PreconditionError(f"utmctl not found at {p}")
    log.debug("utmctl_resolved", path=str(p))
    return p
