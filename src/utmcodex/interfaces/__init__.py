"""Abstract interfaces for external collaborators."""

from utmcodex.interfaces.process import ProcessResult, ProcessRunner

__all__ = ["ProcessResult", "ProcessRunner"]
