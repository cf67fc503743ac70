"""
Install the UTM application from its latest GitHub release.

The release asset is a DMG; it is downloaded into a temporary directory,
attached with hdiutil and the bundle is copied into place with ditto.
"""

import shutil
import tempfile
from pathlib import Path
from typing import Optional

import requests
import structlog

from utmcodex.backends.subprocess_runner import require_commands
from utmcodex.errors import FetchError, PreconditionError
from utmcodex.interfaces.process import ProcessRunner

log = structlog.get_logger(__name__)

RELEASES_URL = "https://api.github.com/repos/utmapp/UTM/releases/latest"
ASSET_NAME = "UTM.dmg"
APP_BUNDLE_NAME = "UTM.app"
REQUIRED_COMMANDS = ("hdiutil", "ditto")

API_TIMEOUT = 30
DOWNLOAD_TIMEOUT = 60
CHUNK_SIZE = 1024 * 1024


def parse_mount_point(attach_output: str) -> Optional[str]:
    """Extract the volume path from ``hdiutil attach`` output.

    hdiutil prints one tab-separated row per partition; the mounted one is
    the last row and its last column is the mount point.
    """
    lines = [line for line in attach_output.splitlines() if line.strip()]
    if not lines:
        return None
    fields = [f.strip() for f in lines[-1].split("\t") if f.strip()]
    if len(fields) < 2 or not fields[-1].startswith("/") or fields[-1].startswith("/dev/"):
        return None
    return fields[-1]


def parse_device(attach_output: str) -> Optional[str]:
    """Whole-disk device node (first row, first column) of the attached image."""
    for line in attach_output.splitlines():
        first = line.split("\t", 1)[0].strip()
        if first.startswith("/dev/"):
            return first
    return None


class UTMInstaller:
    """
    Make sure UTM.app is installed at a known path.

    Usage:
        installer = UTMInstaller(runner, Path("/Applications/UTM.app"))
        installer.ensure_installed(force=False)
    """

    def __init__(
        self,
        runner: ProcessRunner,
        app_path: Path,
        session: Optional[requests.Session] = None,
    ):
        self.runner = runner
        self.app_path = app_path
        self.session = session or requests.Session()
        self.session.headers.setdefault("Accept", "application/vnd.github+json")
        self.session.headers.setdefault("User-Agent", "utm-codex")

    def is_installed(self) -> bool:
        return self.app_path.is_dir()

    def ensure_installed(self, force: bool = False) -> bool:
        """Install UTM unless it is already present.

        Returns True when an install happened, False when it was skipped.
        """
        require_commands(*REQUIRED_COMMANDS)

        if self.is_installed() and not force:
            log.info(
                "UTM already installed (use --force-install to reinstall)",
                path=str(self.app_path),
            )
            return False

        with tempfile.TemporaryDirectory(prefix="utm-codex-") as tmp:
            dmg_path = Path(tmp) / ASSET_NAME
            log.info("Resolving latest UTM release")
            url = self.resolve_download_url()
            log.info("Downloading UTM", url=url)
            self.download(url, dmg_path)
            self.install_from_dmg(dmg_path)
        return True

    def resolve_download_url(self) -> str:
        """Return the browser download URL of the UTM.dmg release asset."""
        try:
            response = self.session.get(RELEASES_URL, timeout=API_TIMEOUT)
            response.raise_for_status()
            release = response.json()
        except requests.RequestException as e:
            raise FetchError(f"Could not query UTM releases: {e}")
        except ValueError as e:
            raise FetchError(f"Malformed UTM release manifest: {e}")

        assets = release.get("assets") if isinstance(release, dict) else None
        for asset in assets or []:
            if isinstance(asset, dict) and asset.get("name") == ASSET_NAME:
                url = asset.get("browser_download_url")
                if url:
                    return url
        raise FetchError(f"Could not find {ASSET_NAME} URL.")

    def download(self, url: str, destination: Path) -> Path:
        """Stream *url* into *destination*."""
        written = 0
        try:
            with self.session.get(url, stream=True, timeout=DOWNLOAD_TIMEOUT) as response:
                response.raise_for_status()
                with open(destination, "wb") as f:
                    for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                        if chunk:
                            f.write(chunk)
                            written += len(chunk)
        except requests.RequestException as e:
            raise FetchError(f"Download of {url} failed: {e}")
        log.debug("download_complete", path=str(destination), bytes=written)
        return destination

    def install_from_dmg(self, dmg_path: Path) -> None:
        """Attach *dmg_path*, copy UTM.app out of it, then detach."""
        log.info("Mounting DMG", dmg=str(dmg_path))
        result = self.runner.run(["hdiutil", "attach", str(dmg_path), "-nobrowse"])
        volume = parse_mount_point(result.stdout)
        if volume is None:
            device = parse_device(result.stdout)
            if device:
                self.detach(device)
            else:
                log.warning("dmg_left_attached", dmg=str(dmg_path))
            raise PreconditionError("Could not determine DMG mount point.")

        try:
            bundle = Path(volume) / APP_BUNDLE_NAME
            if not bundle.is_dir():
                raise PreconditionError(f"{APP_BUNDLE_NAME} not found in mounted DMG.")

            log.info("Installing UTM", path=str(self.app_path))
            self._remove_existing()
            self.runner.run(["ditto", str(bundle), str(self.app_path)])
        finally:
            self.detach(volume)

    def _remove_existing(self) -> None:
        if self.app_path.is_dir() and not self.app_path.is_symlink():
            shutil.rmtree(self.app_path)
        elif self.app_path.exists() or self.app_path.is_symlink():
            self.app_path.unlink()

    def detach(self, volume: str) -> None:
        """Best-effort unmount of *volume* (mount point or device node)."""
        log.info("Detaching DMG", volume=volume)
        result = self.runner.run(["hdiutil", "detach", volume, "-quiet"], check=False)
        if not result.success:
            log.warning(
                "dmg_detach_failed",
                volume=volume,
                rc=result.returncode,
                stderr=result.stderr.strip()[:200],
            )
