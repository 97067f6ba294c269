"""Document blob and write result models."""

from dataclasses import dataclass, field
from typing import Any


@dataclass
class DocumentBlob:
    content: Any = field(default_factory=list)  # decoded JSON
    version_token: str | None = None  # None = document does not exist yet
    ok: bool = True  # False = remote failed, content is a placeholder


@dataclass
class PutResult:
    version_token: str | None
    ok: bool
    conflict: bool = False  # rejected because version_token was stale
