"""Release checks for devx.

The latest release is read from the package index's JSON API. The time of
the last check and the last version announced are kept in the global
``updatecheck.json`` so a background check runs at most once per interval
and a given release is announced once.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from importlib.metadata import PackageNotFoundError, version as dist_version
from pathlib import Path
from typing import Callable

import httpx
import orjson
from packaging.version import InvalidVersion, Version

from devx.core.errors import ExternalUnavailable
from devx.core.fsutil import atomic_write_bytes
from devx.core.session import format_time, parse_time
from devx.core.state import utcnow

PACKAGE = "devx"
INDEX_URL = "https://pypi.org/pypi"
CHECK_INTERVAL = timedelta(hours=24)

# Seconds for the index request
HTTP_TIMEOUT = 10.0


@dataclass
class UpdateCheckState:
    """Persisted result of the last release check."""

    last_check: datetime | None = None
    last_notified_version: str = ""

    @classmethod
    def load(cls, path: Path) -> "UpdateCheckState":
        """Read the state file; a missing or unreadable file is a fresh state."""
        try:
            data = orjson.loads(path.read_bytes())
        except (OSError, orjson.JSONDecodeError):
            return cls()
        if not isinstance(data, dict):
            return cls()
        try:
            last_check = parse_time(data.get("last_check"))
        except (TypeError, ValueError):
            last_check = None
        return cls(
            last_check=last_check,
            last_notified_version=data.get("last_notified_version") or "",
        )

    def save(self, path: Path) -> None:
        document: dict[str, str] = {}
        if self.last_check is not None:
            document["last_check"] = format_time(self.last_check)
        if self.last_notified_version:
            document["last_notified_version"] = self.last_notified_version
        atomic_write_bytes(path, orjson.dumps(document, option=orjson.OPT_INDENT_2))

    def is_due(self, now: datetime, interval: timedelta = CHECK_INTERVAL) -> bool:
        return self.last_check is None or now - self.last_check >= interval


@dataclass
class UpdateInfo:
    current_version: str
    latest_version: str
    release_url: str
    available: bool


def installed_version() -> str:
    """Version of the installed devx distribution, or ``dev`` from a checkout."""
    try:
        return dist_version(PACKAGE)
    except PackageNotFoundError:
        return "dev"


def parse_version(value: str) -> Version:
    """Parse a version string; development builds compare as ``0``."""
    try:
        return Version(value)
    except InvalidVersion:
        return Version("0")


def fetch_latest_version(
    transport: httpx.BaseTransport | None = None,
    index_url: str = INDEX_URL,
    package: str = PACKAGE,
) -> str:
    """Latest released version of package on the index.

    Raises:
        ExternalUnavailable: If the index cannot be reached or answers with
            something other than release metadata.
    """
    url = f"{index_url.rstrip('/')}/{package}/json"
    try:
        with httpx.Client(timeout=HTTP_TIMEOUT, transport=transport) as client:
            response = client.get(url)
    except httpx.HTTPError as e:
        raise ExternalUnavailable(f"failed to reach package index: {e}") from e
    if response.status_code != 200:
        raise ExternalUnavailable(
            f"package index returned status {response.status_code} for {package}"
        )
    try:
        latest = orjson.loads(response.content)["info"]["version"]
    except (orjson.JSONDecodeError, KeyError, TypeError) as e:
        raise ExternalUnavailable(f"failed to parse release metadata: {e}") from e
    if not isinstance(latest, str) or not latest:
        raise ExternalUnavailable("release metadata has no version")
    return latest


def check_for_updates(
    current: str,
    transport: httpx.BaseTransport | None = None,
    index_url: str = INDEX_URL,
) -> UpdateInfo:
    """Compare the running version with the latest release."""
    latest = fetch_latest_version(transport, index_url)
    return UpdateInfo(
        current_version=current,
        latest_version=latest,
        release_url=f"https://pypi.org/project/{PACKAGE}/{latest}/",
        available=parse_version(latest) > parse_version(current),
    )


def check_with_cache(
    state_path: Path,
    current: str,
    transport: httpx.BaseTransport | None = None,
    clock: Callable[[], datetime] = utcnow,
    interval: timedelta = CHECK_INTERVAL,
) -> UpdateInfo | None:
    """Check for a release at most once per interval.

    Returns:
        The update info when an update is available that has not been
        announced yet, otherwise None. The announced version is recorded.
    """
    state = UpdateCheckState.load(state_path)
    now = clock()
    if not state.is_due(now, interval):
        return None

    info = check_for_updates(current, transport)
    state.last_check = now
    announce = info.available and state.last_notified_version != info.latest_version
    if announce:
        state.last_notified_version = info.latest_version
    state.save(state_path)
    return info if announce else None
