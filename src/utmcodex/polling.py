"""
Fixed-interval polling used to wait for the guest's network address.
"""

import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, TypeVar

import structlog

from utmcodex.errors import AddressTimeoutError
from utmcodex.utmctl import UtmCtl

log = structlog.get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded retry: up to ``max_attempts`` queries, ``interval`` seconds apart."""

    max_attempts: int = 120
    interval: float = 5.0

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.interval < 0:
            raise ValueError("interval must be >= 0")

    @property
    def max_wait(self) -> float:
        return self.max_attempts * self.interval


def poll_until(
    check: Callable[[], Optional[T]],
    policy: RetryPolicy,
    sleep: Callable[[float], None] = time.sleep,
) -> Optional[T]:
    """Call *check* until it returns a truthy value or the budget runs out.

    Returns that value, or None if every attempt came back empty.
    """
    for attempt in range(1, policy.max_attempts + 1):
        value = check()
        if value:
            log.debug("poll_succeeded", attempt=attempt)
            return value
        log.debug("poll_not_ready", attempt=attempt, max_attempts=policy.max_attempts)
        sleep(policy.interval)
    return None


def wait_for_ip(
    utmctl: UtmCtl,
    vm: Path,
    policy: RetryPolicy,
    sleep: Callable[[float], None] = time.sleep,
) -> str:
    """Block until the guest agent reports an address for *vm*."""
    log.info("Waiting for guest IP address via utmctl", max_wait_seconds=policy.max_wait)
    ip = poll_until(lambda: utmctl.ip_address(vm), policy, sleep=sleep)
    if not ip:
        raise AddressTimeoutError(
            "Timed out waiting for guest IP. Ensure guest tools/agent are installed."
        )
    return ip
