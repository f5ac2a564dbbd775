"""Command-related data structures."""

from __future__ import annotations

from pydantic import BaseModel


class CommandResult(BaseModel):
    """Captured output of a command run on a node over SSH."""

    address: str
    command: str
    output: str
    failed: bool = False
    elapsed_time: float = 0.0
