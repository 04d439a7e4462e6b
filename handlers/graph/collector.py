# ================================================================
# File     : handlers/graph/collector.py
# Purpose  : Fetch fully-paged directory collections as typed records
# Notes    : Every fetch returns a complete list or raises; callers
#            decide what is fatal. Endpoints are v1.0 only.
# ================================================================

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List

from core.models import (
    DirectAssignment,
    EligibleAssignment,
    Group,
    PrincipalRef,
    RoleDefinition,
    ServicePrincipal,
    User,
)
from core.utils import fncPrintMessage
from handlers.graph.graph_helpers import safe_select_get_all

USER_FIELDS = [
    "id", "displayName", "accountEnabled", "mail", "userPrincipalName",
    "onPremisesSyncEnabled", "onPremisesDistinguishedName", "createdDateTime",
]
GROUP_FIELDS = ["id", "displayName", "mail", "securityEnabled", "isAssignableToRole", "createdDateTime"]
SP_FIELDS = ["id", "displayName", "appId", "servicePrincipalType", "accountEnabled", "createdDateTime"]
ROLE_FIELDS = ["id", "displayName", "description", "isBuiltIn", "isEnabled", "rolePermissions"]
ASSIGNMENT_FIELDS = ["id", "principalId", "roleDefinitionId", "directoryScopeId"]
MEMBER_FIELDS = ["id", "displayName"]

ROLE_DEFINITIONS = "roleManagement/directory/roleDefinitions"
ROLE_ASSIGNMENTS = "roleManagement/directory/roleAssignments"
ELIGIBILITY_SCHEDULES = "roleManagement/directory/roleEligibilitySchedules"


class GraphCollector:
    def __init__(self, client):
        self.client = client

    def _collect(self, label: str, endpoint: str, fields: List[str], extra: str = None) -> List[Dict[str, Any]]:
        items, missing = safe_select_get_all(self.client, endpoint, fields, extra)
        if missing:
            fncPrintMessage(f"{label}: tenant did not return {', '.join(missing)}", "debug")
        fncPrintMessage(f"Fetched {len(items)} {label}", "debug")
        return items

    def fetch_all_users(self) -> List[User]:
        return [User.from_graph(r) for r in self._collect("users", "users", USER_FIELDS)]

    def fetch_all_groups(self, role_assignable_only: bool = False) -> List[Group]:
        extra = "$filter=isAssignableToRole eq true" if role_assignable_only else None
        return [Group.from_graph(r) for r in self._collect("groups", "groups", GROUP_FIELDS, extra)]

    def fetch_all_service_principals(self) -> List[ServicePrincipal]:
        return [ServicePrincipal.from_graph(r) for r in self._collect("service principals", "servicePrincipals", SP_FIELDS)]

    def fetch_all_role_definitions(self) -> List[RoleDefinition]:
        return [RoleDefinition.from_graph(r) for r in self._collect("role definitions", ROLE_DEFINITIONS, ROLE_FIELDS)]

    def fetch_role_definition(self, role_id: str) -> RoleDefinition:
        raw = self.client.get(f"{ROLE_DEFINITIONS}/{role_id}")
        return RoleDefinition.from_graph(raw)

    def fetch_all_role_assignments(self) -> List[DirectAssignment]:
        rows = self._collect("role assignments", ROLE_ASSIGNMENTS, ASSIGNMENT_FIELDS)
        return [DirectAssignment.from_graph(r) for r in rows]

    def fetch_all_eligibility_schedules(self) -> List[EligibleAssignment]:
        rows = self._collect("eligibility schedules", ELIGIBILITY_SCHEDULES, ASSIGNMENT_FIELDS)
        return [EligibleAssignment.from_graph(r) for r in rows]

    def fetch_group_members(self, group_id: str) -> List[PrincipalRef]:
        rows = self.client.get_all(f"groups/{group_id}/members?$select={','.join(MEMBER_FIELDS)}")
        return [PrincipalRef.from_graph(r) for r in rows if isinstance(r, dict) and r.get("id")]

    def fetch_role_audit_events(self, days: int = 30) -> List[Dict[str, Any]]:
        since = (datetime.now(timezone.utc) - timedelta(days=days)).strftime("%Y-%m-%dT%H:%M:%SZ")
        flt = f"$filter=category eq 'RoleManagement' and activityDateTime ge {since}"
        return self.client.get_all(f"auditLogs/directoryAudits?{flt}")
