"""JSON Patch documents handed to the orchestration API."""

from __future__ import annotations

from enum import Enum
from typing import Any, Iterable

from pydantic import BaseModel


class PatchOp(str, Enum):
    add = "add"
    remove = "remove"
    replace = "replace"


class JSONPatch(BaseModel):
    op: PatchOp
    path: str
    value: Any = None

    def to_wire(self) -> dict[str, Any]:
        doc: dict[str, Any] = {"op": self.op.value, "path": self.path}
        if self.op is not PatchOp.remove:
            doc["value"] = self.value
        return doc


def patch_document(patches: Iterable[JSONPatch]) -> list[dict[str, Any]]:
    """Serialize patches in order, as accepted by a json-patch request body."""
    return [p.to_wire() for p in patches]
