# ================================================================
# File     : core/roles.py
# Purpose  : Role-definition lookup with per-role accumulators
# Notes    : ensure() repairs gaps in the bulk role list with a
#            single point fetch; failures return None, never raise.
# ================================================================

from typing import Callable, Dict, Iterable, Iterator, Optional, Set

from core.models import RoleAccumulator, RoleDefinition
from core.utils import fncPrintMessage


class RoleIndex:
    def __init__(self, role_definitions: Iterable[RoleDefinition]):
        self._roles: Dict[str, RoleAccumulator] = {}
        self._missing: Set[str] = set()
        for rd in role_definitions or []:
            self._roles[rd.id] = RoleAccumulator(role=rd)

    def get(self, role_id: str) -> Optional[RoleAccumulator]:
        return self._roles.get(role_id)

    def ensure(self, role_id: str, fallback_fetch: Callable[[str], RoleDefinition]) -> Optional[RoleAccumulator]:
        acc = self._roles.get(role_id)
        if acc is not None:
            return acc
        if not role_id or role_id in self._missing:
            return None

        fncPrintMessage(f"Role definition {role_id} missing from bulk list; fetching directly…", "debug")
        try:
            rd = fallback_fetch(role_id)
        except Exception as ex:
            fncPrintMessage(f"Fallback fetch for role {role_id} failed: {ex}", "debug")
            rd = None

        if rd is None:
            self._missing.add(role_id)
            return None

        acc = RoleAccumulator(role=rd)
        self._roles[role_id] = acc
        return acc

    def __contains__(self, role_id: str) -> bool:
        return role_id in self._roles

    def __iter__(self) -> Iterator[RoleAccumulator]:
        return iter(self._roles.values())

    def __len__(self) -> int:
        return len(self._roles)
