# ================================================================
# File     : modules/entra/role_members.py
# Purpose  : Per-role membership summary for Entra directory roles
#            (direct, PIM eligible and group-derived holders)
# Output   : data["roles"]        -> list[dict] (one row per role)
#            data["diagnostics"]  -> list[dict] (skipped edges etc.)
#            data["summary"]      -> headline counts
# Notes    : Read-only. Groups holding a role count as holders too.
# ================================================================

from datetime import datetime, timezone

from core.aggregator import fncSummariseRoles
from core.config import fncDefaultConfig, fncGetRoleOptions
from core.role_report import fncCollectRoleData
from core.utils import fncPrintMessage, fncToTable, fncNewRunId
from handlers.graph.collector import GraphCollector

REQUIRED_PERMS = [
    "Directory.Read.All",
    "RoleManagement.Read.Directory",
    "GroupMember.Read.All",
]

PREVIEW_HEADERS = [
    "name", "totalMembers", "directMembers", "eligibleMembers",
    "groupDerivedMembers", "usersCount", "servicePrincipalsCount", "groupsCount",
]


def run(client, args):
    run_id = fncNewRunId("role-members")
    fncPrintMessage(f"Running Role Members summary (run={run_id})", "info")

    cfg = getattr(args, "config", None) or fncDefaultConfig()
    only_with_members = bool(getattr(args, "only_with_members", False))

    resolved = fncCollectRoleData(GraphCollector(client), **fncGetRoleOptions(cfg))
    summaries = fncSummariseRoles(resolved, only_with_members=only_with_members)
    rows = [s.to_row() for s in summaries]

    fncPrintMessage("Directory roles by membership", "info")
    ranked = sorted(rows, key=lambda r: (-r["totalMembers"], r["name"].lower()))
    print(fncToTable(ranked, headers=PREVIEW_HEADERS, max_rows=50))

    populated = [s for s in summaries if s.totalMembers]
    data = {
        "provider": "entra",
        "run_id": run_id,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "summary": {
            "Roles Listed": len(summaries),
            "Roles With Holders": len(populated),
            "Custom Roles With Holders": sum(1 for s in populated if s.isBuiltin is False),
            "Direct Holder Slots": sum(s.directMembers for s in summaries),
            "Eligible Holder Slots": sum(s.eligibleMembers for s in summaries),
            "Group-derived Holder Slots": sum(s.groupDerivedMembers for s in summaries),
            "Groups Expanded": resolved.group_fetch_count,
            "Warnings": len(resolved.diagnostics),
        },
        "roles": rows,
        "diagnostics": resolved.diagnostics.to_rows(),
    }

    fncPrintMessage(f"Role Members module complete — {len(populated)} roles have holders.", "success")
    return data
