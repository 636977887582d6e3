"""Name sanitizing and DNS label derivation.

Session names double as git branch names, tmux targets and path components
under ``.worktrees/``; hostnames built from them must be valid RFC 1035 labels
under ``.localhost``.
"""

import re
import zlib

from devx.core.errors import ValidationError

MAX_SESSION_NAME_LEN = 100

# RFC 1035 label limit
MAX_LABEL_LEN = 63

HOSTNAME_SUFFIX = ".localhost"

ROUTE_ID_PREFIX = "sess-"

_SESSION_NAME_RE = re.compile(
    rf"^[A-Za-z0-9][A-Za-z0-9._/\-]{{0,{MAX_SESSION_NAME_LEN - 1}}}$"
)
_NON_DNS_RE = re.compile(r"[^a-z0-9-]")
_DASH_RUN_RE = re.compile(r"-{2,}")


def _sanitize(value: str, extra: str = "") -> str:
    lowered = value.lower()
    for ch in "_ " + extra:
        lowered = lowered.replace(ch, "-")
    dashed = _NON_DNS_RE.sub("-", lowered)
    return _DASH_RUN_RE.sub("-", dashed).strip("-")


def normalize_dns(value: str) -> str:
    """Lowercase value and reduce it to ``[a-z0-9-]``.

    Any character outside the class becomes ``-``, runs of ``-`` collapse and
    leading/trailing ``-`` are trimmed. May return an empty string.
    """
    return _sanitize(value)


def sanitize_hostname(value: str) -> str:
    """Like normalize_dns, but branch-style ``feature/x`` becomes ``feature-x``."""
    return _sanitize(value, "/")


def is_valid_session_name(name: str) -> bool:
    """Check a session name against the git-ref, tmux and path grammars.

    Accepts names that start alphanumeric, use only ``[A-Za-z0-9._/-]`` and
    are at most 100 chars. Rejects a trailing or doubled ``/``, ``.`` and
    ``..`` segments, and segments ending in ``.lock`` or ``.`` or containing
    ``..``.
    """
    if not _SESSION_NAME_RE.match(name):
        return False
    if name.endswith("/") or "//" in name:
        return False
    for segment in name.split("/"):
        if segment in {".", ".."}:
            return False
        if segment.endswith(".lock") or segment.endswith("."):
            return False
        if ".." in segment:
            return False
    return True


def validate_session_name(name: str) -> str:
    """Return name unchanged, or raise ValidationError.

    Raises:
        ValidationError: If the name fails is_valid_session_name.
    """
    if not is_valid_session_name(name):
        raise ValidationError(
            f"invalid session name '{name}': must start with a letter or digit, "
            f"use only letters, digits, '.', '_', '-', '/', be at most "
            f"{MAX_SESSION_NAME_LEN} characters, and not contain '..', '//', "
            f"'.lock' or trailing '.' or '/' segments"
        )
    return name


def _label_hash(label: str) -> str:
    return f"{zlib.crc32(label.encode()) & 0xFFFF:04x}"


def truncate_label(label: str, dns_service: str) -> str:
    """Shorten label to 63 chars keeping the service suffix and a uniqueness hash.

    The result has the shape ``<prefix>-<hash>-<service>`` where hash is the
    16-bit CRC-32 of the untruncated label. If the service name leaves fewer
    than 6 chars for the prefix, falls back to ``<label[:58]>-<hash>``.
    """
    digest = _label_hash(label)
    suffix = f"-{digest}-{dns_service}"
    prefix_len = MAX_LABEL_LEN - len(suffix)
    if prefix_len < 6:
        return label[: MAX_LABEL_LEN - 5].rstrip("-") + "-" + digest
    return label[:prefix_len].rstrip("-") + suffix


def _base_label(session: str, dns_service: str, project_alias: str) -> str:
    parts = [normalize_dns(project_alias), sanitize_hostname(session), dns_service]
    return "-".join(part for part in parts if part)


def build_hostname(session: str, service: str, project_alias: str = "") -> str:
    """Build ``<project>-<session>-<service>.localhost`` for a route.

    Args:
        session: Session name.
        service: Service name from the session's port map.
        project_alias: Registry alias, or "" for standalone sessions.

    Returns:
        The hostname, with its label capped at 63 chars. Empty string if the
        service name normalizes to nothing (the caller skips the route).
    """
    dns_service = normalize_dns(service)
    if not dns_service:
        return ""
    label = _base_label(session, dns_service, project_alias)
    if len(label) > MAX_LABEL_LEN:
        label = truncate_label(label, dns_service)
    return label + HOSTNAME_SUFFIX


def display_host(hostname: str, basedomain: str = "localhost") -> str:
    """Hostname as shown to the user, under basedomain instead of ``localhost``."""
    domain = basedomain.strip(".")
    if not domain or not hostname.endswith(HOSTNAME_SUFFIX):
        return hostname
    return hostname[: -len(HOSTNAME_SUFFIX)] + "." + domain


def build_route_id(session: str, service: str, project_alias: str = "") -> str:
    """Build the proxy route id ``sess-<project>-<session>-<service>``.

    Never truncated. Empty string if the service name normalizes to nothing.
    """
    dns_service = normalize_dns(service)
    if not dns_service:
        return ""
    return ROUTE_ID_PREFIX + _base_label(session, dns_service, project_alias)


def _env_stem(service: str) -> str:
    return service.upper().replace("-", "_")


def port_var(service: str) -> str:
    """Env var holding a service's port: ``auth-service`` -> ``AUTH_SERVICE_PORT``."""
    return _env_stem(service) + "_PORT"


def host_var(service: str) -> str:
    """Env var holding a service's URL: ``ui`` -> ``UI_HOST``."""
    return _env_stem(service) + "_HOST"


def host_url(hostname: str, scheme: str = "http") -> str:
    return f"{scheme}://{hostname}"
