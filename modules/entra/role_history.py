# ================================================================
# File     : modules/entra/role_history.py
# Purpose  : Recent directory role changes from the Entra audit log
#            (role assignment adds/removes, PIM activations, etc.)
# Output   : data["events"]      -> list[dict], newest first
#            data["activities"]  -> list[dict], counts per activity
# Notes    : Read-only. Needs AuditLog.Read.All. Window from
#            roles.history_days (default 30).
# ================================================================

from datetime import datetime, timezone
from typing import Any, Dict, List

from core.config import fncDefaultConfig
from core.utils import fncPrintMessage, fncToTable, fncNewRunId
from handlers.graph.collector import GraphCollector

REQUIRED_PERMS = ["AuditLog.Read.All"]

PRINCIPAL_TARGETS = {"user", "group", "serviceprincipal"}
EVENT_HEADERS = ["activityDateTime", "activity", "result", "initiatedBy", "target", "role"]


def _unquote(value: Any) -> str:
    s = "" if value is None else str(value).strip()
    if len(s) >= 2 and s[0] == s[-1] == '"':
        s = s[1:-1]
    return s


def _initiator(event: Dict[str, Any]) -> str:
    by = event.get("initiatedBy") or {}
    user = by.get("user") or {}
    app = by.get("app") or {}
    return (
        user.get("userPrincipalName") or user.get("displayName")
        or app.get("displayName") or app.get("servicePrincipalName")
        or "(unknown)"
    )


def _role_and_target(event: Dict[str, Any]):
    role, target = "", ""
    for res in event.get("targetResources") or []:
        rtype = str(res.get("type") or "").lower()
        if rtype == "role" and not role:
            role = res.get("displayName") or ""
        elif rtype in PRINCIPAL_TARGETS and not target:
            target = res.get("userPrincipalName") or res.get("displayName") or res.get("id") or ""

        if not role:
            for prop in res.get("modifiedProperties") or []:
                if prop.get("displayName") == "Role.DisplayName":
                    role = _unquote(prop.get("newValue")) or _unquote(prop.get("oldValue"))
                    if role:
                        break
    return role, target


# ================================================================
# Function: fncFlattenRoleAuditEvent
# Purpose : Turn one directoryAudit record into a flat table row
# ================================================================
def fncFlattenRoleAuditEvent(event: Dict[str, Any]) -> Dict[str, str]:
    role, target = _role_and_target(event)
    return {
        "activityDateTime": event.get("activityDateTime") or "",
        "activity": event.get("activityDisplayName") or "",
        "result": event.get("result") or "",
        "initiatedBy": _initiator(event),
        "target": target,
        "role": role,
    }


def fncSummariseActivities(rows: List[Dict[str, str]]) -> List[Dict[str, Any]]:
    counts: Dict[str, int] = {}
    for r in rows:
        counts[r["activity"]] = counts.get(r["activity"], 0) + 1
    return [{"activity": k, "count": v} for k, v in sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))]


def run(client, args):
    run_id = fncNewRunId("role-history")
    cfg = getattr(args, "config", None) or fncDefaultConfig()
    days = (cfg.get("roles") or {}).get("history_days")
    days = 30 if days is None else int(days)
    fncPrintMessage(f"Running Role History (run={run_id}, last {days} days)", "info")

    events = GraphCollector(client).fetch_role_audit_events(days=days)
    rows = sorted((fncFlattenRoleAuditEvent(e) for e in events), key=lambda r: r["activityDateTime"], reverse=True)
    activities = fncSummariseActivities(rows)

    fncPrintMessage("Recent role-management activity", "info")
    print(fncToTable(rows, headers=EVENT_HEADERS, max_rows=50))

    data = {
        "provider": "entra",
        "run_id": run_id,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "summary": {
            "Window (days)": days,
            "Events": len(rows),
            "Failed Events": sum(1 for r in rows if r["result"].lower() == "failure"),
            "Distinct Initiators": len({r["initiatedBy"] for r in rows}),
            "Distinct Roles Touched": len({r["role"] for r in rows if r["role"]}),
        },
        "events": rows,
        "activities": activities,
    }

    fncPrintMessage(f"Role History module complete — {len(rows)} events.", "success")
    return data
