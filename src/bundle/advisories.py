"""Best-effort correlation of a firmware release with its security notes."""

import plistlib
import re
import zipfile
from dataclasses import dataclass
from pathlib import Path

import requests

from common.env import env
from common.logger import get_logger

logger = get_logger(__name__)

_TITLE_RE = re.compile(r">([^<]+)<")
_HREF_RE = re.compile(r'href="([^"]+)"')


class AdvisoryError(Exception):
    """The security updates page could not be fetched."""

    pass


@dataclass(frozen=True)
class BuildInfo:
    product_version: str
    build_version: str


@dataclass(frozen=True)
class SecurityUpdate:
    title: str
    url: str


def read_build_info(firmware: Path) -> BuildInfo | None:
    """
    Read ProductVersion and ProductBuildVersion from a restore image.

    Looks at ``BuildIdentities[0].Info`` in the image's BuildManifest.plist.

    Returns:
        BuildInfo, or None if the manifest or either value is missing
    """
    try:
        with zipfile.ZipFile(firmware) as zf:
            manifest = plistlib.loads(zf.read("BuildManifest.plist"))
    except (OSError, KeyError, zipfile.BadZipFile, plistlib.InvalidFileException) as e:
        logger.debug(f"No readable BuildManifest.plist in {firmware.name}: {e}")
        return None

    identities = manifest.get("BuildIdentities") or [{}]
    info = identities[0].get("Info", {}) if isinstance(identities[0], dict) else {}
    product_version = info.get("ProductVersion") or manifest.get("ProductVersion")
    build_version = info.get("ProductBuildVersion") or manifest.get("ProductBuildVersion")
    if not product_version or not build_version:
        return None
    return BuildInfo(product_version=str(product_version), build_version=str(build_version))


def find_security_update(html: str, product_version: str, base_url: str) -> SecurityUpdate | None:
    """
    Find the first entry on the security updates page naming ``product_version``.

    The title is the first text node on the matching line; the link is the
    first href on that line or the one after it, made absolute against
    ``base_url``'s host.
    """
    version_re = re.compile(rf"(?<![\d.]){re.escape(product_version)}(?![\d.])", re.IGNORECASE)
    lines = html.splitlines()

    for i, line in enumerate(lines):
        if not version_re.search(line):
            continue

        title_match = _TITLE_RE.search(line)
        title = title_match.group(1).strip() if title_match else product_version

        window = "\n".join(lines[i : i + 2])
        href_match = _HREF_RE.search(window)
        if not href_match:
            return None
        url = href_match.group(1)
        if not url.startswith("http"):
            scheme_host = re.match(r"^(https?://[^/]+)", base_url)
            url = (scheme_host.group(1) if scheme_host else "") + url
        return SecurityUpdate(title=title, url=url)

    return None


class SecurityUpdatesClient:
    """Client for the vendor's security updates index page."""

    def __init__(self, url: str | None = None, timeout: int = 15):
        self.url = url or env.security_updates_url()
        self.timeout = timeout
        self.session = requests.Session()
        self.session.headers.update({"User-Agent": "ipsw-diff/1.0"})

    def fetch_index(self) -> str:
        """
        Raises:
            AdvisoryError: If the page cannot be fetched
        """
        try:
            response = self.session.get(self.url, timeout=self.timeout)
            response.raise_for_status()
        except requests.exceptions.Timeout as e:
            raise AdvisoryError(f"Timed out fetching {self.url}") from e
        except requests.exceptions.RequestException as e:
            raise AdvisoryError(f"Failed to fetch {self.url}: {e}") from e
        return response.text

    def lookup(self, product_version: str) -> SecurityUpdate | None:
        return find_security_update(self.fetch_index(), product_version, self.url)

    def close(self) -> None:
        self.session.close()
