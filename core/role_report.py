# ================================================================
# File     : core/role_report.py
# Purpose  : Run one role resolution pass: bulk fetch -> indexes ->
#            resolver, and expose the summary operations
# Notes    : The six bulk collections are all attempted; if any fail
#            the run aborts with a single FatalFetchError.
# ================================================================

from typing import Any, Callable, Dict, List, Union

from core.aggregator import (
    PivotRow,
    PrincipalSummary,
    RoleSummary,
    fncSummarisePrincipals,
    fncSummariseRoles,
)
from core.errors import FatalFetchError
from core.principals import fncBuildPrincipalIndex
from core.resolver import AssignmentResolver, ResolvedRoles
from core.roles import RoleIndex
from core.utils import fncPrintMessage


def _fetch_required(fetchers: Dict[str, Callable[[], List[Any]]]) -> Dict[str, List[Any]]:
    results: Dict[str, List[Any]] = {}
    failures: Dict[str, Exception] = {}
    for name, fetch in fetchers.items():
        try:
            results[name] = list(fetch() or [])
        except Exception as ex:
            fncPrintMessage(f"Failed to fetch {name}: {ex}", "error")
            failures[name] = ex

    if failures:
        err = FatalFetchError(list(failures), failures)
        raise err from next(iter(failures.values()))
    return results


# ================================================================
# Function: fncCollectRoleData
# Purpose : Fetch everything and resolve role holders for one run
# Notes   : Returns ResolvedRoles; per-edge issues are in .diagnostics
# ================================================================
def fncCollectRoleData(
    collector,
    role_assignable_groups_only: bool = False,
    expand_groups: bool = True,
    parallel: int = 1,
) -> ResolvedRoles:
    fncPrintMessage("Collecting directory principals, role definitions and assignments…", "info")
    data = _fetch_required({
        "users": collector.fetch_all_users,
        "groups": lambda: collector.fetch_all_groups(role_assignable_only=role_assignable_groups_only),
        "servicePrincipals": collector.fetch_all_service_principals,
        "roleDefinitions": collector.fetch_all_role_definitions,
        "roleAssignments": collector.fetch_all_role_assignments,
        "eligibilitySchedules": collector.fetch_all_eligibility_schedules,
    })

    principals = fncBuildPrincipalIndex(data["users"], data["groups"], data["servicePrincipals"])
    role_index = RoleIndex(data["roleDefinitions"])
    fncPrintMessage(
        f"Indexed {len(principals)} principals, {len(role_index)} roles, "
        f"{len(data['roleAssignments'])} direct and {len(data['eligibilitySchedules'])} eligible assignments.",
        "info",
    )

    resolver = AssignmentResolver(
        principals,
        role_index,
        fetch_role_definition=collector.fetch_role_definition,
        fetch_group_members=collector.fetch_group_members,
        expand_groups=expand_groups,
        parallel=parallel,
    )
    resolved = resolver.resolve(data["roleAssignments"], data["eligibilitySchedules"])
    if resolved.diagnostics:
        fncPrintMessage(f"Resolution finished with {len(resolved.diagnostics)} warning(s).", "warn")
    return resolved


def fncGetRoleSummaries(collector, only_with_members: bool = False, **options) -> List[RoleSummary]:
    return fncSummariseRoles(fncCollectRoleData(collector, **options), only_with_members=only_with_members)


def fncGetPrincipalSummaries(
    collector,
    only_with_roles: bool = False,
    matrix: bool = False,
    **options,
) -> List[Union[PrincipalSummary, PivotRow]]:
    resolved = fncCollectRoleData(collector, **options)
    return fncSummarisePrincipals(resolved, only_with_roles=only_with_roles, matrix=matrix)
