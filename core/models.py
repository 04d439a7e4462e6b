# ================================================================
# File     : core/models.py
# Purpose  : Typed records for directory principals, role
#            definitions, assignments and assignment sources
# Notes    : Built from raw Graph dicts (camelCase) via from_graph.
#            The principal kind is set by the caller from the source
#            collection; it is never guessed from the payload.
# ================================================================

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union


class PrincipalKind(str, Enum):
    USER = "User"
    GROUP = "Group"
    SERVICE_PRINCIPAL = "ServicePrincipal"


class AssignmentKind(str, Enum):
    DIRECT = "Direct"
    ELIGIBLE = "Eligible"


@dataclass(frozen=True)
class User:
    id: str
    displayName: str = ""
    accountEnabled: Optional[bool] = None
    mail: str = ""
    userPrincipalName: str = ""
    onPremisesSyncEnabled: Optional[bool] = None
    onPremisesDistinguishedName: str = ""
    createdDateTime: str = ""

    @classmethod
    def from_graph(cls, raw: Dict[str, Any]) -> "User":
        return cls(
            id=raw["id"],
            displayName=raw.get("displayName") or "",
            accountEnabled=raw.get("accountEnabled"),
            mail=raw.get("mail") or "",
            userPrincipalName=raw.get("userPrincipalName") or "",
            onPremisesSyncEnabled=raw.get("onPremisesSyncEnabled"),
            onPremisesDistinguishedName=raw.get("onPremisesDistinguishedName") or "",
            createdDateTime=raw.get("createdDateTime") or "",
        )


@dataclass(frozen=True)
class Group:
    id: str
    displayName: str = ""
    mail: str = ""
    securityEnabled: Optional[bool] = None
    isAssignableToRole: Optional[bool] = None
    createdDateTime: str = ""

    @classmethod
    def from_graph(cls, raw: Dict[str, Any]) -> "Group":
        return cls(
            id=raw["id"],
            displayName=raw.get("displayName") or "",
            mail=raw.get("mail") or "",
            securityEnabled=raw.get("securityEnabled"),
            isAssignableToRole=raw.get("isAssignableToRole"),
            createdDateTime=raw.get("createdDateTime") or "",
        )


@dataclass(frozen=True)
class ServicePrincipal:
    id: str
    displayName: str = ""
    appId: str = ""
    servicePrincipalType: str = ""
    accountEnabled: Optional[bool] = None
    createdDateTime: str = ""

    @classmethod
    def from_graph(cls, raw: Dict[str, Any]) -> "ServicePrincipal":
        return cls(
            id=raw["id"],
            displayName=raw.get("displayName") or "",
            appId=raw.get("appId") or "",
            servicePrincipalType=raw.get("servicePrincipalType") or "",
            accountEnabled=raw.get("accountEnabled"),
            createdDateTime=raw.get("createdDateTime") or "",
        )


PrincipalRecord = Union[User, Group, ServicePrincipal]


@dataclass(frozen=True)
class RoleDefinition:
    id: str
    displayName: str = ""
    description: str = ""
    isBuiltIn: Optional[bool] = None
    isEnabled: Optional[bool] = None
    allowedResourceActionsCount: int = 0

    @classmethod
    def from_graph(cls, raw: Dict[str, Any]) -> "RoleDefinition":
        actions = 0
        for perm in raw.get("rolePermissions") or []:
            actions += len((perm or {}).get("allowedResourceActions") or [])
        return cls(
            id=raw["id"],
            displayName=raw.get("displayName") or raw["id"],
            description=raw.get("description") or "",
            isBuiltIn=raw.get("isBuiltIn"),
            isEnabled=raw.get("isEnabled"),
            allowedResourceActionsCount=actions,
        )


@dataclass(frozen=True)
class Assignment:
    roleDefinitionId: str
    principalId: str

    @classmethod
    def from_graph(cls, raw: Dict[str, Any]):
        return cls(roleDefinitionId=raw.get("roleDefinitionId") or "", principalId=raw.get("principalId") or "")


class DirectAssignment(Assignment):
    kind = AssignmentKind.DIRECT


class EligibleAssignment(Assignment):
    kind = AssignmentKind.ELIGIBLE


@dataclass(frozen=True)
class PrincipalRef:
    id: str
    displayName: str = ""

    @classmethod
    def from_graph(cls, raw: Dict[str, Any]) -> "PrincipalRef":
        return cls(id=raw["id"], displayName=raw.get("displayName") or "")


@dataclass(frozen=True)
class AssignmentSource:
    """How a principal holds a role: directly, eligibly, or through a group."""
    kind: AssignmentKind
    viaGroupId: Optional[str] = None
    viaGroupName: Optional[str] = None

    @property
    def via_group(self) -> bool:
        return self.viaGroupId is not None

    @property
    def label(self) -> str:
        if not self.via_group:
            return self.kind.value
        name = self.viaGroupName or self.viaGroupId
        return name if self.kind is AssignmentKind.DIRECT else f"{name} (Eligible)"


@dataclass
class RoleAccumulator:
    role: RoleDefinition
    direct: Dict[str, None] = field(default_factory=dict)
    eligible: Dict[str, None] = field(default_factory=dict)
    contributingGroups: Dict[str, set] = field(default_factory=dict)
    groupDerived: Dict[str, List[AssignmentSource]] = field(default_factory=dict)

    def add_direct(self, principal_id: str) -> None:
        self.direct.setdefault(principal_id, None)

    def add_eligible(self, principal_id: str) -> None:
        self.eligible.setdefault(principal_id, None)

    def add_contributing_group(self, group_id: str, kind: AssignmentKind) -> None:
        self.contributingGroups.setdefault(group_id, set()).add(kind)

    def add_group_derived(self, principal_id: str, source: AssignmentSource) -> None:
        sources = self.groupDerived.setdefault(principal_id, [])
        if source not in sources:
            sources.append(source)

    def derived_only(self) -> List[str]:
        """Members present only through group expansion."""
        return [pid for pid in self.groupDerived if pid not in self.direct and pid not in self.eligible]

    def holders(self) -> List[str]:
        return list(dict.fromkeys(list(self.direct) + list(self.eligible) + list(self.groupDerived)))
