# ================================================================
# File     : core/errors.py
# Purpose  : Error and diagnostic types for role resolution
# Notes    : Fatal fetch errors are raised; everything else is a
#            Diagnostic collected on the result and echoed as a warning.
# ================================================================

from dataclasses import dataclass, field
from typing import Dict, List, Optional

from core.utils import fncPrintMessage

ROLE_NOT_FOUND = "RoleNotFound"
PRINCIPAL_NOT_FOUND = "PrincipalNotFound"
GROUP_MEMBERSHIP_FETCH = "GroupMembershipFetch"


class FatalFetchError(Exception):
    """One or more required bulk collections could not be retrieved."""

    def __init__(self, collections: List[str], causes: Optional[Dict[str, Exception]] = None):
        self.collections = list(collections)
        self.causes = dict(causes or {})
        detail = "; ".join(f"{name}: {self.causes[name]}" for name in self.collections if name in self.causes)
        msg = f"Failed to fetch required collection(s): {', '.join(self.collections)}"
        super().__init__(f"{msg} ({detail})" if detail else msg)


@dataclass(frozen=True)
class Diagnostic:
    kind: str
    message: str
    ref: str = ""

    def to_row(self) -> Dict[str, str]:
        return {"kind": self.kind, "ref": self.ref, "message": self.message}


@dataclass
class Diagnostics:
    items: List[Diagnostic] = field(default_factory=list)

    def warn(self, kind: str, message: str, ref: str = "") -> Diagnostic:
        diag = Diagnostic(kind=kind, message=message, ref=ref)
        self.items.append(diag)
        fncPrintMessage(f"[{kind}] {message}", "warn")
        return diag

    def of_kind(self, kind: str) -> List[Diagnostic]:
        return [d for d in self.items if d.kind == kind]

    def to_rows(self) -> List[Dict[str, str]]:
        return [d.to_row() for d in self.items]

    def __len__(self) -> int:
        return len(self.items)

    def __iter__(self):
        return iter(self.items)
