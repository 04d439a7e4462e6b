# ================================================================
# File     : exports.py
# Purpose  : Handle export logic for RoleCall (JSON, CSV)
# Notes    : Called by RoleCall.py after module(s) finish
# ================================================================

import pathlib
from datetime import datetime, timezone
from typing import Any, Dict, Set

from core.utils import fncPrintMessage, fncEnsureFolder, fncExportCSV, fncWriteJSON

SUPPORTED_FORMATS = {"json", "csv"}


# ================================================================
# Function: fncExportList
# Purpose  : Flatten --export values ("json,csv", "json csv", ...)
# ================================================================
def fncExportList(args_export) -> Set[str]:
    if not args_export:
        return set()
    if isinstance(args_export, str):
        args_export = [args_export]

    out = set()
    for chunk in args_export:
        for part in str(chunk).replace(",", " ").split():
            fmt = part.strip().lower()
            if fmt in SUPPORTED_FORMATS:
                out.add(fmt)
            else:
                fncPrintMessage(f"Ignoring unsupported export format: {fmt}", "warn")
    return out


# ================================================================
# Function: fncGetExportPath
# Purpose  : Build structured output path under ~/.rolecall/reports/
# ================================================================
def fncGetExportPath(module_name: str, root: pathlib.Path = None) -> pathlib.Path:
    if root is None:
        root = pathlib.Path.home() / ".rolecall" / "reports"
    ts = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
    mod_slug = module_name.replace("/", "_").replace("\\", "_")
    return fncEnsureFolder(root / ts / mod_slug)


def _export_tables(prefix: str, data: Dict[str, Any], out_dir: pathlib.Path) -> None:
    for key, val in (data or {}).items():
        if key == "summary":
            continue
        if isinstance(val, list) and val and isinstance(val[0], dict):
            fncExportCSV(str(out_dir / f"{prefix}_{key}.csv"), val)


# ================================================================
# Function: fncExportSingleModule
# Purpose  : Handle all export formats for one module
# ================================================================
def fncExportSingleModule(module_name: str, data: dict, formats: set, root: pathlib.Path = None) -> pathlib.Path:
    out_dir = fncGetExportPath(module_name, root)

    if "json" in formats:
        fncWriteJSON(str(out_dir / f"{module_name}.json"), data)
    if "csv" in formats:
        _export_tables(module_name, data, out_dir)

    fncPrintMessage(f"Exports written → {out_dir}", "success")
    return out_dir


# ================================================================
# Function: fncExportMultiModule
# Purpose  : Handle all export formats when running multiple modules
# ================================================================
def fncExportMultiModule(results: dict, formats: set, root: pathlib.Path = None) -> pathlib.Path:
    out_dir = fncGetExportPath("ALL_MODULES", root)

    if "json" in formats:
        fncWriteJSON(str(out_dir / "all_modules.json"), results)
    if "csv" in formats:
        for mod, data in results.items():
            _export_tables(mod, data, fncEnsureFolder(out_dir / mod))

    fncPrintMessage(f"Exports written → {out_dir}", "success")
    return out_dir
