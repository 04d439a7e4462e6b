#!/usr/bin/env python3
# ================================================================
# Tool     : RoleCall
# Purpose  : Entra ID directory role reporting (direct, PIM eligible
#            and group-derived role holders)
# Notes    : "Everybody with a role, answer when your name is called."
# ================================================================

import argparse
import pathlib

from core.config import fncInitConfig, fncApplyCliOverrides, fncIsDebug, fncGetProviderConfig
from core.utils import fncPrintMessage, fncSetDebug, fncDisplayBanner, fncBlurb
from core.module_loader import fncRunModule, fncRunAllModules
from core.exports import fncExportList, fncExportSingleModule, fncExportMultiModule


# ================================================================
# Function: fncParseArguments
# Purpose  : Define and parse command-line arguments for RoleCall
# Notes    : Module flags are passed through args to every module
# ================================================================
def fncParseArguments(argv=None):
    parser = argparse.ArgumentParser(
        prog="RoleCall",
        description="RoleCall — who holds which Entra directory role, and how"
    )

    parser.add_argument(
        "provider",
        choices=["entra"],
        help="Directory provider to target"
    )

    group = parser.add_mutually_exclusive_group(required=True)
    group.add_argument(
        "--scan",
        help="Name of module to execute (e.g., role_members, role_principals, role_history)"
    )
    group.add_argument(
        "--run-all",
        action="store_true",
        help="Run all available modules for the selected provider"
    )

    parser.add_argument("--skip", default="", help="Comma-separated module names to skip with --run-all")
    parser.add_argument(
        "--parallel",
        type=int,
        default=1,
        help="Number of modules to run concurrently with --run-all (default: 1 = sequential)"
    )
    parser.add_argument(
        "--export",
        nargs="*",
        metavar="FMT[,FMT...]",
        default=None,
        help="Export formats: json, csv. Example: --export json,csv"
    )
    parser.add_argument("--config", dest="config_path", default=None, help="Path to config.json (default: ~/.rolecall/config.json)")
    parser.add_argument("--debug", action="store_true", help="Enable verbose debug output")

    roles = parser.add_argument_group("role report options")
    roles.add_argument("--only-with-members", action="store_true", help="role_members: hide roles nobody holds")
    roles.add_argument("--only-with-roles", action="store_true", help="role_principals: hide principals holding no role")
    roles.add_argument("--matrix", action="store_true", help="role_principals: one column per role name")
    roles.add_argument("--role-assignable-groups", action="store_true", help="Only load role-assignable groups")
    roles.add_argument("--no-group-expansion", action="store_true", help="Do not expand group members")
    roles.add_argument("--group-workers", type=int, default=None, help="Concurrent group-membership lookups")
    roles.add_argument("--history-days", type=int, default=None, help="role_history: days of audit log to read")

    return parser.parse_args(argv)


# ================================================================
# Function: fncInitClient
# Purpose  : Initialise the Graph client from config / environment
# Notes    : Missing credentials are prompted for by GraphClient
# ================================================================
def fncInitClient(provider: str, cfg: dict):
    from handlers.graph.client import GraphClient

    entra_cfg = fncGetProviderConfig(cfg, provider)
    if not all(entra_cfg.get(k) for k in ("tenant_id", "client_id", "client_secret")):
        fncPrintMessage("Missing Entra credentials — dropping into interactive mode…", "warn")

    return GraphClient(
        tenant_id=entra_cfg.get("tenant_id"),
        client_id=entra_cfg.get("client_id"),
        client_secret=entra_cfg.get("client_secret"),
        authority=entra_cfg.get("authority"),
    )


# ================================================================
# Function: main
# Purpose  : Main entry point for RoleCall execution
# ================================================================
def main(argv=None):
    args = fncParseArguments(argv)

    cfg = fncInitConfig(args.config_path)
    cfg = fncApplyCliOverrides(cfg, args)
    fncSetDebug(fncIsDebug(cfg))
    args.config = cfg

    fncDisplayBanner("v1.0")
    fncBlurb(args.provider)
    fncPrintMessage("Debug output enabled.", "debug")

    client = fncInitClient(args.provider, cfg)

    export_formats = fncExportList(args.export)
    reports_root = pathlib.Path(cfg.get("rolecall_home") or pathlib.Path.home() / ".rolecall") / "reports"

    if args.run_all:
        if args.parallel > 4:
            fncPrintMessage("Warning: --parallel > 4 may hit Microsoft Graph throttling.", "warn")

        skip_list = [m.strip() for m in args.skip.split(",") if m.strip()]
        results = fncRunAllModules(args.provider, client, args, skip_list=skip_list)
        if export_formats:
            fncExportMultiModule(results, export_formats, reports_root)
    else:
        fncPrintMessage(f"Running scan module: {args.scan}", "info")
        result = fncRunModule(args.provider, args.scan, client, args)
        if export_formats and isinstance(result, dict):
            fncExportSingleModule(args.scan, result, export_formats, reports_root)

    fncPrintMessage("Register taken. Everyone's accounted for.", "success")


if __name__ == "__main__":
    main()
