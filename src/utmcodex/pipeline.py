"""
The provisioning pipeline: install UTM, clone and start the VM, wait for its
address and provision the guest.

Every stage either completes or raises; there is no retry above the address
poll and no rollback of a half-finished clone.
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional

import requests
import structlog

from utmcodex.backends.subprocess_runner import SubprocessRunner
from utmcodex.cloner import clone_vm, start_vm
from utmcodex.config import ProvisionConfig
from utmcodex.errors import ProvisionError
from utmcodex.installer import UTMInstaller
from utmcodex.interfaces.process import ProcessRunner
from utmcodex.logging import log_operation
from utmcodex.paths import utmctl_path
from utmcodex.polling import RetryPolicy, wait_for_ip
from utmcodex.ssh import provision_guest
from utmcodex.utmctl import UtmCtl

log = structlog.get_logger(__name__)


class PipelineState(Enum):
    """Position of a run in the provisioning state machine."""

    START = "start"
    INSTALL_HYPERVISOR = "install_hypervisor"
    CLONE_VM = "clone_vm"
    START_VM = "start_vm"
    WAIT_FOR_ADDRESS = "wait_for_address"
    PROVISION_GUEST = "provision_guest"
    DONE = "done"
    FAILED = "failed"


@dataclass
class PipelineResult:
    """Outcome of a successful run."""

    vm_path: Path
    ip_address: str
    state: PipelineState = PipelineState.DONE


@dataclass
class ProvisionPipeline:
    """
    Run the provisioning stages in order.

    Usage:
        pipeline = ProvisionPipeline(config)
        result = pipeline.run()
        print(result.ip_address)
    """

    config: ProvisionConfig
    runner: ProcessRunner = field(default_factory=SubprocessRunner)
    session: Optional[requests.Session] = None
    sleep: Callable[[float], None] = time.sleep
    state: PipelineState = PipelineState.START
    failed_state: Optional[PipelineState] = None
    history: List[PipelineState] = field(default_factory=list)

    def _enter(self, state: PipelineState) -> None:
        self.state = state
        self.history.append(state)
        log.debug("pipeline_state", state=state.value)

    def _fail(self) -> None:
        self.failed_state = self.state
        self._enter(PipelineState.FAILED)

    def _stage(self, state: PipelineState, **kwargs):
        """Enter *state* and time it; the CLI reports failures, so log them at debug."""
        self._enter(state)
        return log_operation(log, state.value, failure_level="debug", **kwargs)

    def run(self) -> PipelineResult:
        """Run every stage; raises the failing stage's ProvisionError.

        OS errors from a stage (permissions, a file where a directory is
        expected) are re-raised as ProvisionError.
        """
        cfg = self.config
        self.history = [PipelineState.START]
        try:
            with self._stage(PipelineState.INSTALL_HYPERVISOR, path=str(cfg.utm_app)):
                installer = UTMInstaller(self.runner, cfg.utm_app, session=self.session)
                installer.ensure_installed(force=cfg.force_install)
                utmctl = UtmCtl(utmctl_path(cfg.utm_app), self.runner)

            with self._stage(PipelineState.CLONE_VM, vm_name=cfg.name):
                vm_path = clone_vm(utmctl, cfg.template, cfg.utm_dir, cfg.name)

            with self._stage(PipelineState.START_VM, vm_name=cfg.name):
                start_vm(utmctl, vm_path)

            policy = RetryPolicy(
                max_attempts=cfg.poll.attempts, interval=cfg.poll.interval_seconds
            )
            with self._stage(PipelineState.WAIT_FOR_ADDRESS, vm_name=cfg.name):
                ip = wait_for_ip(utmctl, vm_path, policy, sleep=self.sleep)
            log.info("Guest IP", ip=ip)

            with self._stage(PipelineState.PROVISION_GUEST, host=ip, user=cfg.user):
                provision_guest(
                    self.runner,
                    ip,
                    cfg.user,
                    cfg.guest,
                    connect_timeout=cfg.ssh_connect_timeout,
                )
        except ProvisionError:
            self._fail()
            raise
        except OSError as e:
            self._fail()
            raise ProvisionError(str(e)) from e

        self._enter(PipelineState.DONE)
        return PipelineResult(vm_path=vm_path, ip_address=ip)
