"""Tests for release checks."""

from datetime import datetime, timedelta, timezone

import httpx
import orjson
import pytest

from devx.core.errors import ExternalUnavailable
from devx.core.updates import (
    UpdateCheckState,
    check_for_updates,
    check_with_cache,
    fetch_latest_version,
    parse_version,
)
from helpers import Clock

T0 = datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)


def index(latest="0.2.0", status=200):
    """Mock package index answering every request with release metadata."""
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(status, json={"info": {"version": latest}})

    transport = httpx.MockTransport(handler)
    transport.requests = requests
    return transport


def test_fetch_latest_version():
    """Test the version is read from the package's JSON endpoint."""
    transport = index("1.4.2")
    assert fetch_latest_version(transport) == "1.4.2"
    assert transport.requests[0].url == "https://pypi.org/pypi/devx/json"


def test_fetch_latest_version_not_found():
    """Test a non-200 answer raises ExternalUnavailable."""
    with pytest.raises(ExternalUnavailable, match="status 404"):
        fetch_latest_version(index(status=404))


def test_fetch_latest_version_bad_body():
    """Test metadata without a version raises ExternalUnavailable."""
    transport = httpx.MockTransport(lambda request: httpx.Response(200, json={}))
    with pytest.raises(ExternalUnavailable, match="failed to parse"):
        fetch_latest_version(transport)


def test_fetch_latest_version_offline():
    """Test connection errors become ExternalUnavailable."""

    def handler(request):
        raise httpx.ConnectError("offline", request=request)

    with pytest.raises(ExternalUnavailable, match="failed to reach"):
        fetch_latest_version(httpx.MockTransport(handler))


def test_parse_version_dev_build():
    """Test unparsable versions compare lower than any release."""
    assert parse_version("dev") < parse_version("0.0.1")
    assert parse_version("0.10.0") > parse_version("0.9.0")


def test_check_for_updates():
    """Test availability compares versions, not strings."""
    assert check_for_updates("0.9.0", index("0.10.0")).available
    assert not check_for_updates("0.10.0", index("0.10.0")).available
    info = check_for_updates("dev", index("0.1.0"))
    assert info.available
    assert info.release_url == "https://pypi.org/project/devx/0.1.0/"


def test_state_roundtrip(tmp_path):
    """Test the state file keeps the check time and announced version."""
    path = tmp_path / "updatecheck.json"
    UpdateCheckState(last_check=T0, last_notified_version="0.2.0").save(path)
    assert orjson.loads(path.read_bytes()) == {
        "last_check": "2024-01-15T12:00:00Z",
        "last_notified_version": "0.2.0",
    }
    assert UpdateCheckState.load(path) == UpdateCheckState(T0, "0.2.0")


@pytest.mark.parametrize("content", [b"not json", b"[]", b'{"last_check": 5}'])
def test_state_unreadable(tmp_path, content):
    """Test a damaged state file reads as a fresh state."""
    path = tmp_path / "updatecheck.json"
    path.write_bytes(content)
    assert UpdateCheckState.load(path).last_check is None


def test_state_is_due():
    """Test a check is due when never run or a full interval has passed."""
    assert UpdateCheckState().is_due(T0)
    state = UpdateCheckState(last_check=T0)
    assert not state.is_due(T0 + timedelta(hours=23))
    assert state.is_due(T0 + timedelta(hours=24))


def test_check_with_cache_announces_once(tmp_path):
    """Test a release is announced once and checks respect the interval."""
    path = tmp_path / "updatecheck.json"
    transport = index("0.2.0")

    info = check_with_cache(path, "0.1.0", transport, clock=Clock(T0))
    assert info.latest_version == "0.2.0"
    assert UpdateCheckState.load(path).last_notified_version == "0.2.0"

    later = Clock(T0 + timedelta(hours=1))
    assert check_with_cache(path, "0.1.0", transport, clock=later) is None
    assert len(transport.requests) == 1

    next_day = Clock(T0 + timedelta(days=1))
    assert check_with_cache(path, "0.1.0", transport, clock=next_day) is None
    assert len(transport.requests) == 2


def test_check_with_cache_up_to_date(tmp_path):
    """Test an up-to-date install records the check without announcing."""
    path = tmp_path / "updatecheck.json"
    assert check_with_cache(path, "0.2.0", index("0.2.0"), clock=Clock(T0)) is None
    state = UpdateCheckState.load(path)
    assert state.last_check == T0
    assert state.last_notified_version == ""
