"""Utilities for parsing PowerShell ``Format-List`` output.

``Get-ChildItem Env: | Format-List`` and friends print one field per line::

    Name  : NO_PROXY
    Value : .cluster.local;.svc;10.0.0.0/16;api-int.example.com;
            localhost

Long values are wrapped by the console, so any line that is not a ``Name`` or
``Value`` marker continues the value above it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Optional

WATCHED_ENV_VARS: tuple[str, ...] = ("HTTP_PROXY", "HTTPS_PROXY", "NO_PROXY")

_NAME_MARKER = "Name"
_VALUE_MARKER = "Value"


class ParserState(Enum):
    SEEKING_NAME = "seeking_name"
    SEEKING_VALUE = "seeking_value"
    ACCUMULATING = "accumulating"


@dataclass
class _ParseContext:
    state: ParserState = ParserState.SEEKING_NAME
    name: Optional[str] = None
    # Not cleared by a Name line; see parse_env_vars.
    buffer: list[str] = field(default_factory=list)


def _after_colon(line: str) -> Optional[str]:
    _, sep, rest = line.partition(":")
    if not sep:
        return None
    return rest.strip()


def _feed(ctx: _ParseContext, line: str) -> None:
    if line.startswith(_NAME_MARKER):
        name = _after_colon(line)
        if name is not None:
            ctx.name = name
            ctx.state = ParserState.SEEKING_VALUE
    elif line.startswith(_VALUE_MARKER):
        value = _after_colon(line)
        if value is not None:
            if value.startswith("Value:"):
                value = value[len("Value:"):].strip()
            ctx.buffer = [value]
            ctx.state = ParserState.ACCUMULATING
    elif ctx.state is not ParserState.SEEKING_NAME:
        ctx.buffer.append(line)
        ctx.state = ParserState.ACCUMULATING
    # continuation data before any Name marker is dropped


def parse_env_vars(output: str | Iterable[str]) -> dict[str, str]:
    """Parse ``Name``/``Value`` listings into ``{name: value}``.

    Wrapped continuation lines are concatenated with no separator and every
    ``;`` in a value becomes ``,``.  A repeated name keeps the last value.

    The value buffer is only replaced by a ``Value`` line.  A ``Name`` line
    directly followed by another ``Name`` line therefore hands the previous
    value to the new name until the next ``Value`` line.  Callers rely on
    this for some service listings, so it is kept as is.

    Never raises; unrecognised input yields a best-effort (possibly empty)
    mapping.
    """
    lines = output.splitlines() if isinstance(output, str) else output
    ctx = _ParseContext()
    env: dict[str, str] = {}

    for raw in lines:
        line = raw.strip()
        if not line:
            continue
        _feed(ctx, line)
        if ctx.name is not None and ctx.buffer:
            env[ctx.name] = "".join(ctx.buffer).replace(";", ",")
    return env


def final_line(output: str) -> str:
    """Return the last non-blank line of *output*, stripped."""
    for line in reversed(output.splitlines()):
        if line.strip():
            return line.strip()
    return ""


def parse_count(output: str) -> int:
    """Parse the integer printed on the final line of *output*.

    Raises ``ValueError`` when the final line is not an integer.
    """
    return int(final_line(output))
