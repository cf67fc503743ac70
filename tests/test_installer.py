"""Tests for the UTM installer."""
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
import requests

from utmcodex.errors import FetchError, PreconditionError
from utmcodex.installer import ASSET_NAME, UTMInstaller, parse_device, parse_mount_point
from utmcodex.interfaces.process import ProcessResult

from conftest import FakeRunner


def attach_output(volume: Path) -> str:
    return (
        "/dev/disk4          \tGUID_partition_scheme          \t\n"
        f"/dev/disk4s1        \tApple_HFS                      \t{volume}\n"
    )


def make_volume(root: Path, with_app: bool = True) -> Path:
    volume = root / "Volumes" / "UTM"
    volume.mkdir(parents=True)
    if with_app:
        (volume / "UTM.app" / "Contents").mkdir(parents=True)
    return volume


def dmg_handler(volume: Path, detach_rc: int = 0):
    def handler(cmd):
        if cmd[:2] == ["hdiutil", "attach"]:
            return ProcessResult(0, attach_output(volume), "")
        if cmd[:2] == ["hdiutil", "detach"]:
            return ProcessResult(detach_rc, "", "resource busy" if detach_rc else "")
        return ProcessResult(0, "", "")
    return handler


class TestParseMountPoint:
    """Test hdiutil attach output parsing."""

    def test_last_row_last_column(self):
        assert parse_mount_point(attach_output(Path("/Volumes/UTM"))) == "/Volumes/UTM"

    def test_volume_name_with_spaces(self):
        output = "/dev/disk5s1\tApple_HFS\t/Volumes/UTM 4.6\n"
        assert parse_mount_point(output) == "/Volumes/UTM 4.6"

    def test_empty_output(self):
        assert parse_mount_point("") is None
        assert parse_mount_point("\n\n") is None

    def test_row_without_mount_point(self):
        assert parse_mount_point("/dev/disk4\tGUID_partition_scheme\t\n") is None

    def test_device_only_row(self):
        assert parse_mount_point("/dev/disk4\n") is None


class TestParseDevice:
    """Test device node extraction from hdiutil attach output."""

    def test_first_device(self):
        assert parse_device(attach_output(Path("/Volumes/UTM"))) == "/dev/disk4"

    def test_no_device(self):
        assert parse_device("attach failed\n") is None


class TestReleaseLookup:
    """Test resolving the UTM.dmg asset URL."""

    def test_picks_exact_asset_name(self, tmp_path, fake_runner, release_session):
        installer = UTMInstaller(fake_runner, tmp_path / "UTM.app", session=release_session)

        assert installer.resolve_download_url() == "https://example.invalid/UTM.dmg"

    def test_missing_asset(self, tmp_path, fake_runner, release_session):
        release_session.manifest.json.return_value = {
            "assets": [{"name": "UTM-SE.dmg", "browser_download_url": "https://x/UTM-SE.dmg"}]
        }
        installer = UTMInstaller(fake_runner, tmp_path / "UTM.app", session=release_session)

        with pytest.raises(FetchError, match="Could not find UTM.dmg URL"):
            installer.resolve_download_url()

    def test_null_url(self, tmp_path, fake_runner, release_session):
        release_session.manifest.json.return_value = {
            "assets": [{"name": ASSET_NAME, "browser_download_url": None}]
        }
        installer = UTMInstaller(fake_runner, tmp_path / "UTM.app", session=release_session)

        with pytest.raises(FetchError):
            installer.resolve_download_url()

    def test_skips_malformed_assets(self, tmp_path, fake_runner, release_session):
        release_session.manifest.json.return_value = {
            "assets": [
                "UTM.dmg",
                None,
                {"name": ASSET_NAME, "browser_download_url": "https://example.invalid/UTM.dmg"},
            ]
        }
        installer = UTMInstaller(fake_runner, tmp_path / "UTM.app", session=release_session)

        assert installer.resolve_download_url() == "https://example.invalid/UTM.dmg"

    def test_only_malformed_assets(self, tmp_path, fake_runner, release_session):
        release_session.manifest.json.return_value = {"assets": ["UTM.dmg", 42]}
        installer = UTMInstaller(fake_runner, tmp_path / "UTM.app", session=release_session)

        with pytest.raises(FetchError, match="Could not find UTM.dmg URL"):
            installer.resolve_download_url()

    def test_http_error(self, tmp_path, fake_runner, release_session):
        release_session.manifest.raise_for_status.side_effect = requests.HTTPError("403")
        installer = UTMInstaller(fake_runner, tmp_path / "UTM.app", session=release_session)

        with pytest.raises(FetchError, match="Could not query UTM releases"):
            installer.resolve_download_url()

    def test_sets_github_headers(self, tmp_path, fake_runner, release_session):
        UTMInstaller(fake_runner, tmp_path / "UTM.app", session=release_session)

        assert release_session.headers["Accept"] == "application/vnd.github+json"
        assert "User-Agent" in release_session.headers


class TestEnsureInstalled:
    """Test the install / skip decision and the DMG install steps."""

    def test_skips_when_installed(self, utm_app, release_session, all_commands_present):
        runner = FakeRunner()
        installer = UTMInstaller(runner, utm_app, session=release_session)

        assert installer.ensure_installed(force=False) is False
        release_session.get.assert_not_called()
        assert runner.calls == []
        assert (utm_app / "Contents" / "MacOS" / "utmctl").exists()

    def test_missing_host_command_fails_before_network(self, tmp_path, release_session):
        runner = FakeRunner()
        installer = UTMInstaller(runner, tmp_path / "UTM.app", session=release_session)

        with patch("utmcodex.backends.subprocess_runner.shutil.which") as which:
            which.side_effect = lambda name: None if name == "ditto" else f"/usr/bin/{name}"
            with pytest.raises(PreconditionError, match="Missing required command: ditto"):
                installer.ensure_installed()

        release_session.get.assert_not_called()
        assert runner.calls == []

    def test_fresh_install(self, tmp_path, release_session, all_commands_present):
        volume = make_volume(tmp_path)
        runner = FakeRunner(dmg_handler(volume))
        app = tmp_path / "Applications" / "UTM.app"
        installer = UTMInstaller(runner, app, session=release_session)

        assert installer.ensure_installed() is True

        attach, ditto, detach = runner.calls
        assert attach[:2] == ["hdiutil", "attach"]
        assert attach[2].endswith("UTM.dmg")
        assert "-nobrowse" in attach
        assert ditto == ["ditto", str(volume / "UTM.app"), str(app)]
        assert detach[:3] == ["hdiutil", "detach", str(volume)]
        release_session.get.assert_any_call("https://example.invalid/UTM.dmg", stream=True, timeout=60)

    def test_force_reinstall_removes_existing(self, utm_app, tmp_path, release_session, all_commands_present):
        volume = make_volume(tmp_path)
        runner = FakeRunner(dmg_handler(volume))
        installer = UTMInstaller(runner, utm_app, session=release_session)

        assert installer.ensure_installed(force=True) is True

        assert not utm_app.exists()
        assert runner.commands_named("ditto")

    def test_volume_without_app(self, utm_app, tmp_path, release_session, all_commands_present):
        volume = make_volume(tmp_path, with_app=False)
        runner = FakeRunner(dmg_handler(volume))
        installer = UTMInstaller(runner, utm_app, session=release_session)

        with pytest.raises(PreconditionError, match="UTM.app not found in mounted DMG"):
            installer.ensure_installed(force=True)

        assert utm_app.exists()
        assert not runner.commands_named("ditto")
        assert runner.calls[-1][:2] == ["hdiutil", "detach"]

    def test_detach_failure_is_not_fatal(self, tmp_path, release_session, all_commands_present):
        volume = make_volume(tmp_path)
        runner = FakeRunner(dmg_handler(volume, detach_rc=16))
        installer = UTMInstaller(runner, tmp_path / "UTM.app", session=release_session)

        assert installer.ensure_installed() is True
        assert runner.kwargs[-1]["check"] is False

    def test_download_failure(self, tmp_path, release_session, all_commands_present):
        release_session.download.raise_for_status.side_effect = requests.HTTPError("404")
        runner = FakeRunner()
        installer = UTMInstaller(runner, tmp_path / "UTM.app", session=release_session)

        with pytest.raises(FetchError, match="Download of"):
            installer.ensure_installed()
        assert runner.calls == []

    def test_download_writes_chunks(self, tmp_path, fake_runner, release_session):
        installer = UTMInstaller(fake_runner, tmp_path / "UTM.app", session=release_session)
        dest = tmp_path / "UTM.dmg"

        installer.download("https://example.invalid/UTM.dmg", dest)

        assert dest.read_bytes() == b"dmg-bytes"

    def test_unknown_mount_point_detaches_device(self, utm_app, release_session, all_commands_present):
        def handler(cmd):
            if cmd[:2] == ["hdiutil", "attach"]:
                return ProcessResult(0, "/dev/disk7\tGUID_partition_scheme\t\n", "")
            return ProcessResult(0, "", "")
        runner = FakeRunner(handler)
        installer = UTMInstaller(runner, utm_app, session=release_session)

        with pytest.raises(PreconditionError, match="Could not determine DMG mount point"):
            installer.ensure_installed(force=True)

        assert runner.calls[-1][:3] == ["hdiutil", "detach", "/dev/disk7"]
        assert not runner.commands_named("ditto")
        assert utm_app.exists()

    def test_unknown_mount_point_without_device(self, utm_app, release_session, all_commands_present):
        runner = FakeRunner(lambda cmd: ProcessResult(0, "", ""))
        installer = UTMInstaller(runner, utm_app, session=release_session)

        with pytest.raises(PreconditionError):
            installer.ensure_installed(force=True)

        assert [c[:2] for c in runner.calls] == [["hdiutil", "attach"]]
