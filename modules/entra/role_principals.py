# ================================================================
# File     : modules/entra/role_principals.py
# Purpose  : Per-principal directory role report, either one row of
#            role lists per principal or a matrix with one column
#            per role name
# Output   : data["principals"]   -> list[dict]
#            data["diagnostics"]  -> list[dict]
# Notes    : Matrix cells list every source: Direct, Eligible, or the
#            contributing group's name ("<group> (Eligible)" for PIM).
# ================================================================

from datetime import datetime, timezone

from core.aggregator import fncMatrixRows, fncRoleColumns, fncSummarisePrincipals
from core.config import fncDefaultConfig, fncGetRoleOptions
from core.role_report import fncCollectRoleData
from core.utils import fncPrintMessage, fncToTable, fncNewRunId
from handlers.graph.collector import GraphCollector

REQUIRED_PERMS = [
    "Directory.Read.All",
    "RoleManagement.Read.Directory",
    "GroupMember.Read.All",
]

FLAT_PREVIEW = ["displayName", "principalType", "directCount", "eligibleCount", "groupDerivedCount", "directRoles", "eligibleRoles"]


def run(client, args):
    run_id = fncNewRunId("role-principals")
    matrix = bool(getattr(args, "matrix", False))
    only_with_roles = bool(getattr(args, "only_with_roles", False))
    fncPrintMessage(f"Running Role Principals report (run={run_id}, matrix={matrix})", "info")

    cfg = getattr(args, "config", None) or fncDefaultConfig()
    resolved = fncCollectRoleData(GraphCollector(client), **fncGetRoleOptions(cfg))
    summaries = fncSummarisePrincipals(resolved, only_with_roles=only_with_roles, matrix=matrix)

    if matrix:
        columns = fncRoleColumns(resolved)
        rows = fncMatrixRows(summaries, columns)
        preview = ["displayName", "principalType"] + columns[:6]
    else:
        columns = []
        rows = [s.to_row() for s in summaries]
        preview = FLAT_PREVIEW

    with_roles = [pid for pid in resolved.principal_roles if resolved.principal_roles[pid]]
    by_type = {}
    for pid in with_roles:
        kind = resolved.principals[pid].kind.value
        by_type[kind] = by_type.get(kind, 0) + 1

    fncPrintMessage("Principals and their directory roles", "info")
    print(fncToTable(rows, headers=preview, max_rows=50))

    data = {
        "provider": "entra",
        "run_id": run_id,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "summary": {
            "Principals Listed": len(rows),
            "Principals With Roles": len(with_roles),
            "Users With Roles": by_type.get("User", 0),
            "Groups With Roles": by_type.get("Group", 0),
            "Service Principals With Roles": by_type.get("ServicePrincipal", 0),
            "Role Columns": len(columns) if matrix else "n/a",
            "Warnings": len(resolved.diagnostics),
        },
        "principals": rows,
        "diagnostics": resolved.diagnostics.to_rows(),
    }

    fncPrintMessage(f"Role Principals module complete — {len(rows)} rows.", "success")
    return data
