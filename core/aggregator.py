# ================================================================
# File     : core/aggregator.py
# Purpose  : Project resolved role data into per-role summaries and
#            per-principal rows (flat or role matrix)
# Notes    : Read-only over ResolvedRoles; safe to call repeatedly.
#            Groups granted a role count as holders in their own right.
# ================================================================

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Union

from core.models import AssignmentKind, AssignmentSource, PrincipalKind
from core.principals import TaggedPrincipal
from core.resolver import ResolvedRoles


@dataclass(frozen=True)
class RoleSummary:
    roleId: str
    name: str
    description: str
    isBuiltin: Optional[bool]
    isEnabled: Optional[bool]
    allowedResourceActions: int
    totalMembers: int
    directMembers: int
    eligibleMembers: int
    groupDerivedMembers: int
    usersCount: int
    servicePrincipalsCount: int
    groupsCount: int

    def to_row(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class PrincipalSummary:
    principalId: str
    displayName: str
    principalType: str
    accountEnabled: Optional[bool]
    onPremisesSync: Optional[bool]
    mail: str
    userPrincipalName: str
    orgUnit: str
    directCount: int
    eligibleCount: int
    groupDerivedCount: int
    directRoles: str
    eligibleRoles: str
    groupDerivedRoles: str

    def to_row(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class PivotRow:
    principalId: str
    displayName: str
    principalType: str
    accountEnabled: Optional[bool]
    onPremisesSync: Optional[bool]
    userPrincipalName: str
    cells: Dict[str, List[AssignmentSource]] = field(default_factory=dict)

    def labels(self, role_name: str) -> List[str]:
        return [s.label for s in self.cells.get(role_name, [])]

    def to_row(self, columns: List[str]) -> Dict[str, Any]:
        row: Dict[str, Any] = {
            "principalId": self.principalId,
            "displayName": self.displayName,
            "principalType": self.principalType,
            "accountEnabled": self.accountEnabled,
            "onPremisesSync": self.onPremisesSync,
            "userPrincipalName": self.userPrincipalName,
        }
        for col in columns:
            row[col] = "; ".join(self.labels(col))
        return row


def _source_order(source: AssignmentSource):
    return (source.via_group, source.kind.value, (source.viaGroupName or "").lower(), source.viaGroupId or "")


def _principal_order(p: TaggedPrincipal):
    return (p.display_name.lower(), p.id)


# ================================================================
# Function: fncSummariseRoles
# Purpose : One RoleSummary per role with de-duplicated counts
# Notes   : totalMembers is the size of direct ∪ eligible ∪ derived
# ================================================================
def fncSummariseRoles(resolved: ResolvedRoles, only_with_members: bool = False) -> List[RoleSummary]:
    out: List[RoleSummary] = []
    if resolved.is_empty():
        return out
    for acc in sorted(resolved.roles.values(), key=lambda a: (a.role.displayName.lower(), a.role.id)):
        holders = acc.holders()
        if only_with_members and not holders:
            continue

        by_kind = {kind: 0 for kind in PrincipalKind}
        for pid in holders:
            by_kind[resolved.principals[pid].kind] += 1

        rd = acc.role
        out.append(RoleSummary(
            roleId=rd.id,
            name=rd.displayName,
            description=rd.description,
            isBuiltin=rd.isBuiltIn,
            isEnabled=rd.isEnabled,
            allowedResourceActions=rd.allowedResourceActionsCount,
            totalMembers=len(holders),
            directMembers=len(acc.direct),
            eligibleMembers=len(acc.eligible),
            groupDerivedMembers=len(acc.derived_only()),
            usersCount=by_kind[PrincipalKind.USER],
            servicePrincipalsCount=by_kind[PrincipalKind.SERVICE_PRINCIPAL],
            groupsCount=by_kind[PrincipalKind.GROUP],
        ))
    return out


# ================================================================
# Function: fncRoleColumns
# Purpose : Distinct role names held by anyone in the run (sorted)
# ================================================================
def fncRoleColumns(resolved: ResolvedRoles) -> List[str]:
    names = {resolved.role_name(rid) for roles in resolved.principal_roles.values() for rid in roles}
    return sorted(names, key=lambda n: (n.lower(), n))


def _flat_row(p: TaggedPrincipal, roles: Dict[str, List[AssignmentSource]], resolved: ResolvedRoles) -> PrincipalSummary:
    # keyed by role id so same-named roles stay distinct
    direct, eligible, derived = {}, {}, {}
    derived_labels = set()
    for rid, sources in roles.items():
        name = resolved.role_name(rid)
        for s in sources:
            if s.via_group:
                derived[rid] = name
                suffix = "" if s.kind is AssignmentKind.DIRECT else ", Eligible"
                derived_labels.add(f"{name} (via {s.viaGroupName or s.viaGroupId}{suffix})")
            elif s.kind is AssignmentKind.DIRECT:
                direct[rid] = name
            else:
                eligible[rid] = name

    return PrincipalSummary(
        principalId=p.id,
        displayName=p.display_name,
        principalType=p.kind.value,
        accountEnabled=p.enabled,
        onPremisesSync=p.on_premises_sync,
        mail=p.mail,
        userPrincipalName=p.user_principal_name,
        orgUnit=p.org_unit,
        directCount=len(direct),
        eligibleCount=len(eligible),
        groupDerivedCount=len(derived),
        directRoles=", ".join(sorted(direct.values())),
        eligibleRoles=", ".join(sorted(eligible.values())),
        groupDerivedRoles=", ".join(sorted(derived_labels)),
    )


def _pivot_row(p: TaggedPrincipal, roles: Dict[str, List[AssignmentSource]], resolved: ResolvedRoles) -> PivotRow:
    cells: Dict[str, List[AssignmentSource]] = {}
    for rid, sources in roles.items():
        cell = cells.setdefault(resolved.role_name(rid), [])
        for s in sources:
            if s not in cell:
                cell.append(s)
    for cell in cells.values():
        cell.sort(key=_source_order)

    return PivotRow(
        principalId=p.id,
        displayName=p.display_name,
        principalType=p.kind.value,
        accountEnabled=p.enabled,
        onPremisesSync=p.on_premises_sync,
        userPrincipalName=p.user_principal_name,
        cells=cells,
    )


# ================================================================
# Function: fncSummarisePrincipals
# Purpose : One row per principal, flat or as a role matrix
# Notes   : only_with_roles keeps group-derived-only principals
# ================================================================
def fncSummarisePrincipals(
    resolved: ResolvedRoles,
    only_with_roles: bool = False,
    matrix: bool = False,
) -> List[Union[PrincipalSummary, PivotRow]]:
    out: List[Union[PrincipalSummary, PivotRow]] = []
    if resolved.is_empty():
        return out
    for p in sorted(resolved.principals.values(), key=_principal_order):
        roles = resolved.principal_roles.get(p.id, {})
        if only_with_roles and not roles:
            continue
        out.append(_pivot_row(p, roles, resolved) if matrix else _flat_row(p, roles, resolved))
    return out


# ================================================================
# Function: fncMatrixRows
# Purpose : Materialise PivotRows into fixed-schema dicts
# Notes   : Only used at the output boundary (console / CSV / JSON)
# ================================================================
def fncMatrixRows(rows: List[PivotRow], columns: List[str]) -> List[Dict[str, Any]]:
    return [r.to_row(columns) for r in rows]
