"""tmuxp layout rendering for session workspaces.

The layout is a Jinja2 template rendered with ``Name``, ``Path``, ``Ports``,
``Routes`` and ``Scheme``, plus the ``port_var`` and ``host_var`` helpers.
"""

from pathlib import Path
from typing import Mapping

import jinja2

from devx.core.errors import ValidationError
from devx.core.fsutil import atomic_write_text
from devx.core.naming import host_var, port_var

TMUXP_FILE = ".tmuxp.yaml"

_EXPORTS = """\
    shell_command_before:
      - cd {{ Path }}
{%- for svc, port in Ports|dictsort %}
      - export {{ port_var(svc) }}={{ port }}
{%- endfor %}
{%- for svc, host in Routes|dictsort %}
      - export {{ host_var(svc) }}={{ Scheme }}://{{ host }}
{%- endfor %}
      - export SESSION_NAME={{ Name }}"""

DEFAULT_TEMPLATE = f"""\
session_name: {{{{ Name }}}}
start_directory: {{{{ Path }}}}
windows:
  - window_name: editor
    layout: tiled
    shell_command_before:
      - cd {{{{ Path }}}}
    panes:
      - echo "Editor window - Session: {{{{ Name }}}}"
      - echo "Use your preferred editor here"

  - window_name: backend
    layout: tiled
{_EXPORTS}
    panes:
      - echo "Backend window - Session: {{{{ Name }}}}"
      - echo "Start your backend server here"

  - window_name: frontend
    layout: tiled
{_EXPORTS}
    panes:
      - echo "Frontend window - Session: {{{{ Name }}}}"
      - echo "Start your frontend server here"
"""


def _environment() -> jinja2.Environment:
    env = jinja2.Environment(
        undefined=jinja2.StrictUndefined,
        keep_trailing_newline=True,
        autoescape=False,
    )
    env.globals["port_var"] = port_var
    env.globals["host_var"] = host_var
    return env


def load_template(*candidates: Path | None) -> str:
    """Return the first existing template among candidates, else the default."""
    for candidate in candidates:
        if candidate is not None and candidate.is_file():
            return candidate.read_text()
    return DEFAULT_TEMPLATE


def render_layout(
    template: str,
    name: str,
    path: Path,
    ports: Mapping[str, int],
    routes: Mapping[str, str] | None = None,
    scheme: str = "http",
) -> str:
    """Render a layout template.

    Raises:
        ValidationError: If the template does not parse or references an
            unknown value.
    """
    try:
        return (
            _environment()
            .from_string(template)
            .render(
                Name=name,
                Path=str(path),
                Ports=dict(ports),
                Routes=dict(routes or {}),
                Scheme=scheme,
            )
        )
    except jinja2.TemplateError as e:
        raise ValidationError(f"failed to render tmuxp template: {e}") from e


def write_layout(
    workspace: Path,
    template: str,
    name: str,
    ports: Mapping[str, int],
    routes: Mapping[str, str] | None = None,
    scheme: str = "http",
) -> Path:
    """Render the layout into ``<workspace>/.tmuxp.yaml``."""
    target = workspace / TMUXP_FILE
    content = render_layout(template, name, workspace, ports, routes, scheme)
    atomic_write_text(target, content)
    return target
