"""
Repository events consumed by the trigger matcher.
"""

from pydantic import BaseModel, field_validator
from typing import Any, Dict, FrozenSet, Optional

from conveyor_controller.src.models.workflow import EventKind

BRANCH_PREFIX = "refs/heads/"
TAG_PREFIX = "refs/tags/"

def normalize_ref(ref: str) -> str:
    """Expand a bare branch name to its full ref (main -> refs/heads/main)."""
    ref = ref.strip()
    if not ref or ref.startswith("refs/"):
        return ref
    return BRANCH_PREFIX + ref

class Event(BaseModel):
    kind: EventKind
    ref: str
    changed_paths: FrozenSet[str] = frozenset()

    # Source metadata, only used for step context
    sha: str = ""
    base_ref: Optional[str] = None
    repository: str = ""
    clone_url: str = ""
    actor: str = ""

    class Config:
        frozen = True

    @field_validator("ref", "base_ref")
    @classmethod
    def _normalize(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        return normalize_ref(value)

    @property
    def is_tag(self) -> bool:
        return self.ref.startswith(TAG_PREFIX)

    @property
    def ref_name(self) -> str:
        """Short ref name (refs/tags/v1.0 -> v1.0)."""
        for prefix in (BRANCH_PREFIX, TAG_PREFIX):
            if self.ref.startswith(prefix):
                return self.ref[len(prefix):]
        return self.ref

    def context(self, token: str = "") -> Dict[str, Any]:
        """Values exposed to ${{ github.* }} expressions."""
        return {
            "github": {
                "event_name": self.kind.value,
                "ref": self.ref,
                "ref_name": self.ref_name,
                "base_ref": self.base_ref or "",
                "sha": self.sha,
                "repository": self.repository,
                "clone_url": self.clone_url,
                "actor": self.actor,
                "token": token,
            }
        }
