# ================================================================
# File     : core/resolver.py
# Purpose  : Resolve direct + eligible role assignments against the
#            principal and role indexes, then expand contributing
#            groups one level into their members
# Notes    : Per-edge problems become Diagnostics, never exceptions.
#            Nested groups are recorded as holders but not expanded.
# ================================================================

import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional

from core.errors import (
    Diagnostics,
    GROUP_MEMBERSHIP_FETCH,
    PRINCIPAL_NOT_FOUND,
    ROLE_NOT_FOUND,
)
from core.models import (
    Assignment,
    AssignmentKind,
    AssignmentSource,
    PrincipalKind,
    PrincipalRef,
    RoleAccumulator,
    RoleDefinition,
)
from core.principals import TaggedPrincipal
from core.roles import RoleIndex
from core.utils import fncPrintMessage

# principal ID -> role ID -> every way the principal holds that role
PrincipalRoles = Dict[str, Dict[str, List[AssignmentSource]]]


class GroupMemberCache:
    """Group ID -> member list, fetched at most once per group.

    Owned by a single resolve() call. Safe to share between worker
    threads: a per-group lock makes concurrent callers wait for the
    first fetch instead of issuing their own.
    """

    def __init__(self, fetcher: Callable[[str], Iterable[PrincipalRef]]):
        self._fetcher = fetcher
        self._lock = threading.Lock()
        self._entry_locks: Dict[str, threading.Lock] = {}
        self._members: Dict[str, List[PrincipalRef]] = {}
        self._errors: Dict[str, Exception] = {}
        self.fetch_count = 0

    def get(self, group_id: str) -> List[PrincipalRef]:
        with self._lock:
            entry_lock = self._entry_locks.setdefault(group_id, threading.Lock())

        with entry_lock:
            if group_id in self._members:
                return self._members[group_id]
            if group_id in self._errors:
                raise self._errors[group_id]

            with self._lock:
                self.fetch_count += 1
            try:
                members = list(self._fetcher(group_id) or [])
            except Exception as ex:
                self._errors[group_id] = ex
                raise
            self._members[group_id] = members
            return members

    def snapshot(self) -> Dict[str, List[PrincipalRef]]:
        with self._lock:
            return dict(self._members)


@dataclass
class ResolvedRoles:
    principals: Dict[str, TaggedPrincipal]
    roles: Dict[str, RoleAccumulator]
    principal_roles: PrincipalRoles
    group_members: Dict[str, List[PrincipalRef]] = field(default_factory=dict)
    diagnostics: Diagnostics = field(default_factory=Diagnostics)
    group_fetch_count: int = 0

    def role_name(self, role_id: str) -> str:
        acc = self.roles.get(role_id)
        return acc.role.displayName if acc else role_id

    def is_empty(self) -> bool:
        return not self.principal_roles


class AssignmentResolver:
    def __init__(
        self,
        principals: Dict[str, TaggedPrincipal],
        role_index: RoleIndex,
        fetch_role_definition: Callable[[str], RoleDefinition],
        fetch_group_members: Callable[[str], Iterable[PrincipalRef]],
        expand_groups: bool = True,
        parallel: int = 1,
    ):
        self._principals = principals
        self._roles = role_index
        self._fetch_role_definition = fetch_role_definition
        self._fetch_group_members = fetch_group_members
        self._expand_groups = expand_groups
        self._parallel = max(1, int(parallel or 1))

    # ---------- public ----------

    def resolve(self, direct: Iterable[Assignment], eligible: Iterable[Assignment]) -> ResolvedRoles:
        diagnostics = Diagnostics()
        principal_roles: PrincipalRoles = {}

        for kind, assignments in ((AssignmentKind.DIRECT, direct), (AssignmentKind.ELIGIBLE, eligible)):
            for a in assignments or []:
                self._classify(a, kind, principal_roles, diagnostics)

        cache = GroupMemberCache(self._fetch_group_members)
        if self._expand_groups:
            self._expand(cache, principal_roles, diagnostics)

        fncPrintMessage(
            f"Resolved {sum(len(r) for r in principal_roles.values())} principal/role pairs "
            f"across {len(principal_roles)} principals ({cache.fetch_count} group lookups).",
            "debug",
        )
        return ResolvedRoles(
            principals=self._principals,
            roles={acc.role.id: acc for acc in self._roles},
            principal_roles=principal_roles,
            group_members=cache.snapshot(),
            diagnostics=diagnostics,
            group_fetch_count=cache.fetch_count,
        )

    # ---------- classification ----------

    def _classify(self, a: Assignment, kind: AssignmentKind, principal_roles: PrincipalRoles, diagnostics: Diagnostics) -> None:
        rid, pid = a.roleDefinitionId, a.principalId

        acc = self._roles.ensure(rid, self._fetch_role_definition)
        if acc is None:
            diagnostics.warn(
                ROLE_NOT_FOUND,
                f"{kind.value} assignment for principal {pid} references unknown role {rid}; skipped.",
                ref=rid,
            )
            return

        principal = self._principals.get(pid)
        if principal is None:
            diagnostics.warn(
                PRINCIPAL_NOT_FOUND,
                f"{kind.value} assignment of '{acc.role.displayName}' references unknown principal {pid}; skipped.",
                ref=pid,
            )
            return

        if kind is AssignmentKind.DIRECT:
            acc.add_direct(pid)
        else:
            acc.add_eligible(pid)
        _record(principal_roles, pid, rid, AssignmentSource(kind=kind))

        if principal.kind is PrincipalKind.GROUP:
            acc.add_contributing_group(pid, kind)

    # ---------- group expansion ----------

    def _expand(self, cache: GroupMemberCache, principal_roles: PrincipalRoles, diagnostics: Diagnostics) -> None:
        group_ids = list(dict.fromkeys(gid for acc in self._roles for gid in acc.contributingGroups))
        if not group_ids:
            return

        fncPrintMessage(f"Expanding membership of {len(group_ids)} role-holding group(s)…", "info")
        members = self._fetch_all_members(cache, group_ids, diagnostics)

        unknown_warned = set()
        for acc in self._roles:
            for gid, kinds in acc.contributingGroups.items():
                refs = members.get(gid)
                if refs is None:
                    continue
                group = self._principals[gid]
                for kind in sorted(kinds, key=lambda k: k.value):
                    source = AssignmentSource(kind=kind, viaGroupId=gid, viaGroupName=group.display_name)
                    for ref in refs:
                        if ref.id == gid:
                            continue
                        if ref.id not in self._principals:
                            if (gid, ref.id) not in unknown_warned:
                                unknown_warned.add((gid, ref.id))
                                diagnostics.warn(
                                    PRINCIPAL_NOT_FOUND,
                                    f"Member {ref.displayName or ref.id} of group '{group.display_name}' is not a known principal; skipped.",
                                    ref=ref.id,
                                )
                            continue
                        acc.add_group_derived(ref.id, source)
                        _record(principal_roles, ref.id, acc.role.id, source)

    def _fetch_all_members(self, cache: GroupMemberCache, group_ids: List[str], diagnostics: Diagnostics) -> Dict[str, Optional[List[PrincipalRef]]]:
        results: Dict[str, Optional[List[PrincipalRef]]] = {}

        def _failed(gid: str, ex: Exception) -> None:
            name = self._principals[gid].display_name
            diagnostics.warn(
                GROUP_MEMBERSHIP_FETCH,
                f"Could not read members of group '{name}': {ex}. Its direct role holders are still reported.",
                ref=gid,
            )
            results[gid] = None

        if self._parallel > 1 and len(group_ids) > 1:
            with ThreadPoolExecutor(max_workers=self._parallel) as executor:
                futures = {executor.submit(cache.get, gid): gid for gid in group_ids}
                for future in as_completed(futures):
                    gid = futures[future]
                    try:
                        results[gid] = future.result()
                    except Exception as ex:
                        _failed(gid, ex)
        else:
            for gid in group_ids:
                try:
                    results[gid] = cache.get(gid)
                except Exception as ex:
                    _failed(gid, ex)
        return results


def _record(principal_roles: PrincipalRoles, principal_id: str, role_id: str, source: AssignmentSource) -> None:
    sources = principal_roles.setdefault(principal_id, {}).setdefault(role_id, [])
    if source not in sources:
        sources.append(source)
