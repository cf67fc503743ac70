"""Clone the template VM into a new bundle and boot it."""

from pathlib import Path

import structlog

from utmcodex.errors import PreconditionError
from utmcodex.paths import vm_bundle_path
from utmcodex.utmctl import UtmCtl

log = structlog.get_logger(__name__)


def prepare_target(template: Path, utm_dir: Path, vm_name: str) -> Path:
    """Validate the template and return a free bundle path for *vm_name*.

    Never overwrites: an existing bundle must be removed by the operator.
    """
    if not template.is_dir():
        raise PreconditionError(f"Template VM not found: {template}")

    utm_dir.mkdir(parents=True, exist_ok=True)
    target = vm_bundle_path(utm_dir, vm_name)
    if target.exists() or target.is_symlink():
        raise PreconditionError(f"Target VM already exists: {target}")
    return target


def clone_vm(utmctl: UtmCtl, template: Path, utm_dir: Path, vm_name: str) -> Path:
    """Clone *template* to ``<utm_dir>/<vm_name>.utm`` and return that path."""
    target = prepare_target(template, utm_dir, vm_name)
    log.info("Cloning template VM", template=str(template), target=str(target))
    utmctl.clone(template, target)
    return target


def start_vm(utmctl: UtmCtl, vm_path: Path) -> None:
    log.info("Starting VM", vm=str(vm_path))
    utmctl.start(vm_path)

