"""
Pytest fixtures and configuration for utm-codex tests.
"""
from pathlib import Path
from typing import Callable, Dict, List, Optional
from unittest.mock import MagicMock, patch

import pytest
import structlog

from utmcodex.config import ProvisionConfig
from utmcodex.errors import ToolInvocationError
from utmcodex.interfaces.process import ProcessResult, ProcessRunner


class FakeRunner(ProcessRunner):
    """ProcessRunner that records commands and answers from a handler."""

    def __init__(self, handler: Optional[Callable[[List[str]], ProcessResult]] = None):
        self.handler = handler or (lambda cmd: ProcessResult(0, "", ""))
        self.calls: List[List[str]] = []
        self.kwargs: List[Dict] = []

    def run(
        self,
        command,
        capture_output=True,
        timeout=None,
        check=True,
        cwd=None,
        env=None,
    ) -> ProcessResult:
        self.calls.append(list(command))
        self.kwargs.append({"capture_output": capture_output, "check": check, "timeout": timeout})
        result = self.handler(list(command))
        if check and not result.success:
            raise ToolInvocationError(command, result.returncode, result.stderr)
        return result

    def commands_named(self, name: str) -> List[List[str]]:
        """Calls whose executable basename or first argument is *name*."""
        return [
            c for c in self.calls
            if Path(c[0]).name == name or (len(c) > 1 and c[1] == name)
        ]


@pytest.fixture(autouse=True)
def quiet_structlog():
    """Keep structlog output out of test captures."""
    structlog.configure(
        processors=[],
        logger_factory=structlog.ReturnLoggerFactory(),
        cache_logger_on_first_use=False,
    )
    yield
    structlog.reset_defaults()


@pytest.fixture
def fake_runner():
    return FakeRunner()


@pytest.fixture
def all_commands_present():
    """Pretend every host command is on PATH."""
    with patch("utmcodex.backends.subprocess_runner.shutil.which") as which:
        which.side_effect = lambda name: f"/usr/bin/{name}"
        yield which


@pytest.fixture
def utm_app(tmp_path):
    """An installed UTM.app with an executable utmctl."""
    app = tmp_path / "Applications" / "UTM.app"
    macos = app / "Contents" / "MacOS"
    macos.mkdir(parents=True)
    utmctl = macos / "utmctl"
    utmctl.write_text("#!/bin/sh\n")
    utmctl.chmod(0o755)
    return app


@pytest.fixture
def template(tmp_path):
    bundle = tmp_path / "Documents" / "UTM" / "WindowsBase.utm"
    bundle.mkdir(parents=True)
    (bundle / "config.plist").write_text("<plist/>")
    return bundle


@pytest.fixture
def sample_config(tmp_path, utm_app, template):
    return ProvisionConfig(
        template=template,
        name="TestVM",
        user="alice",
        utm_app=utm_app,
        utm_dir=tmp_path / "Documents" / "UTM",
    )


@pytest.fixture
def release_session():
    """requests.Session mock whose release manifest lists UTM.dmg."""
    session = MagicMock()
    session.headers = {}
    manifest = MagicMock()
    manifest.json.return_value = {
        "tag_name": "v4.6.4",
        "assets": [
            {"name": "UTM.ipa", "browser_download_url": "https://example.invalid/UTM.ipa"},
            {"name": "UTM.dmg", "browser_download_url": "https://example.invalid/UTM.dmg"},
        ],
    }
    download = MagicMock()
    download.iter_content.return_value = [b"dmg-", b"bytes"]
    download.__enter__.return_value = download
    download.__exit__.return_value = False

    def get(url, **kwargs):
        return download if kwargs.get("stream") else manifest

    session.get.side_effect = get
    session.manifest = manifest
    session.download = download
    return session
