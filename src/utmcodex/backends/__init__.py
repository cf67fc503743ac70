"""Concrete implementations of the interfaces package."""

from utmcodex.backends.subprocess_runner import SubprocessRunner, require_commands

__all__ = ["SubprocessRunner", "require_commands"]
