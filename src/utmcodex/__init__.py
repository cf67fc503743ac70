"""
utm-codex - Provision a UTM Windows guest with the Codex CLI.

Installs UTM on the macOS host, clones a prepared Windows template VM, boots it
and installs Codex CLI inside the guest over SSH.
"""

__version__ = "0.1.0"
__author__ = "utm-codex Team"

from utmcodex.config import ProvisionConfig
from utmcodex.pipeline import PipelineResult, ProvisionPipeline

__all__ = ["PipelineResult", "ProvisionConfig", "ProvisionPipeline", "__version__"]
