# ================================================================
# File     : core/principals.py
# Purpose  : Build the principal lookup (users, groups, SPs) and
#            shared identity helpers
# Notes    : The kind comes from which collection a record arrived in
# ================================================================

import re
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from core.models import (
    Group,
    PrincipalKind,
    PrincipalRecord,
    ServicePrincipal,
    User,
)

_DN_SPLIT = re.compile(r"(?<!\\),")


@dataclass(frozen=True)
class TaggedPrincipal:
    kind: PrincipalKind
    record: PrincipalRecord

    @property
    def id(self) -> str:
        return self.record.id

    @property
    def display_name(self) -> str:
        return self.record.displayName or self.record.id

    @property
    def enabled(self) -> Optional[bool]:
        return getattr(self.record, "accountEnabled", None)

    @property
    def mail(self) -> str:
        return getattr(self.record, "mail", "") or ""

    @property
    def user_principal_name(self) -> str:
        return getattr(self.record, "userPrincipalName", "") or ""

    @property
    def on_premises_sync(self) -> Optional[bool]:
        return getattr(self.record, "onPremisesSyncEnabled", None)

    @property
    def org_unit(self) -> str:
        return fncCanonicalOrgUnit(getattr(self.record, "onPremisesDistinguishedName", ""))


# ================================================================
# Function: fncCanonicalOrgUnit
# Purpose : Turn an AD distinguished name into a canonical OU path
# Notes   : CN=Ann,OU=Admins,OU=IT,DC=corp,DC=com -> corp.com/IT/Admins
# ================================================================
def fncCanonicalOrgUnit(distinguished_name: Optional[str]) -> str:
    if not distinguished_name:
        return ""

    domain: List[str] = []
    units: List[str] = []
    for part in _DN_SPLIT.split(distinguished_name):
        key, sep, value = part.strip().partition("=")
        if not sep:
            continue
        value = value.replace("\\,", ",").strip()
        key = key.strip().upper()
        if key == "DC":
            domain.append(value)
        elif key == "OU":
            units.append(value)

    path = [".".join(domain)] if domain else []
    path.extend(reversed(units))
    return "/".join(path)


# ================================================================
# Function: fncBuildPrincipalIndex
# Purpose : Map principal ID -> TaggedPrincipal across all three sources
# Notes   : Last write wins within a collection
# ================================================================
def fncBuildPrincipalIndex(
    users: Iterable[User],
    groups: Iterable[Group],
    service_principals: Iterable[ServicePrincipal],
) -> Dict[str, TaggedPrincipal]:
    index: Dict[str, TaggedPrincipal] = {}
    for kind, records in (
        (PrincipalKind.USER, users),
        (PrincipalKind.GROUP, groups),
        (PrincipalKind.SERVICE_PRINCIPAL, service_principals),
    ):
        for rec in records or []:
            index[rec.id] = TaggedPrincipal(kind=kind, record=rec)
    return index
