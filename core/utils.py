# ================================================================
# File     : utils.py
# Purpose  : Common helpers for RoleCall (console, files, data)
# Notes    : British English; witty output; debug gated globally
# ================================================================

import os
import json
import csv
import time
import uuid
import random
import pathlib
from typing import Any, Dict, Iterable, List, Optional, Tuple

from colorama import Fore, Style, init as _colorama_init
from tabulate import tabulate

_colorama_init(autoreset=True)

DEBUG_ENABLED = False


# ================================================================
# Function: fncSetDebug
# Purpose : Globally enable/disable debug output
# Notes   : Called from main after parsing --debug
# ================================================================
def fncSetDebug(enabled: bool) -> None:
    global DEBUG_ENABLED
    DEBUG_ENABLED = bool(enabled)


# ================================================================
# Function: fncPrintMessage
# Purpose : Standardised console output with levels and colours
# Notes   : Levels: info, warn, error, success, debug
# ================================================================
def fncPrintMessage(message: str, level: str = "info") -> None:
    if level == "debug" and not DEBUG_ENABLED:
        return
    colours = {
        "info": Fore.CYAN,
        "warn": Fore.YELLOW,
        "error": Fore.RED,
        "success": Fore.GREEN,
        "debug": Fore.MAGENTA
    }
    prefix = {
        "info": "[•]",
        "warn": "[!]",
        "error": "[✗]",
        "success": "[✓]",
        "debug": "[∆]"
    }
    colour = colours.get(level, "")
    mark = prefix.get(level, "[ ]")
    print(f"{colour}{mark} {message}{Style.RESET_ALL}")


# ================================================================
# Function: fncDisplayBanner
# Purpose : Display the RoleCall ASCII banner in rainbow colours
# Notes   : Cycles through colour palette per character
# ================================================================
def fncDisplayBanner(version: str = "v1.0"):
    banner_lines = [
        "__________       .__          _________        .__  .__   ",
        "\\______   \\ ____ |  |   ____  \\_   ___ \\_____  |  | |  |  ",
        " |       _//  _ \\|  | _/ __ \\ /    \\  \\/\\__  \\ |  | |  |  ",
        " |    |   (  <_> )  |_\\  ___/ \\     \\____/ __ \\|  |_|  |__",
        " |____|_  /\\____/|____/\\___  > \\______  (____  /____/____/",
        "        \\/                 \\/         \\/     \\/           ",
    ]

    colours = [Fore.RED, Fore.YELLOW, Fore.GREEN, Fore.BLUE]

    def rainbow(text: str) -> str:
        """Cycle through colours for a rainbow effect"""
        out = ""
        for i, ch in enumerate(text):
            out += colours[i % len(colours)] + ch
        return out + Style.RESET_ALL

    print("\n")
    for line in banner_lines:
        print(rainbow(line))

    print(f"{Fore.CYAN}\nRoleCall {version} — 'Everybody with a role, answer when your name is called.'{Style.RESET_ALL}\n")


# ================================================================
# Function: fncBlurb
# Purpose : Display a witty blurb describing current action
# Notes   : Falls back to the generic list for unknown actions
# ================================================================
def fncBlurb(action: str, flavour: str = None):
    blurbs = {
        "entra": [
            "Taking the register for your Entra directory roles…",
            "Checking who's holding the keys to the tenant…",
            "Counting heads in every role-assignable group…"
        ],
        "generic": [
            "Sharpening pencils for the register…",
            "Tidying the seating plan…",
            "Warming up the Graph engines…"
        ]
    }

    flavour_text = flavour or random.choice(blurbs.get(action, blurbs["generic"]))
    fncPrintMessage(flavour_text, "info")


# ================================================================
# Function: fncEnsureFolder
# Purpose : Create a folder if it does not exist
# Notes   : Returns pathlib.Path object
# ================================================================
def fncEnsureFolder(path: str) -> pathlib.Path:
    p = pathlib.Path(path).expanduser().resolve()
    p.mkdir(parents=True, exist_ok=True)
    return p


# ================================================================
# Function: fncLoadEnv
# Purpose : Read environment variable with default
# Notes   : Strips quotes; returns default if unset
# ================================================================
def fncLoadEnv(name: str, default: Optional[str] = None) -> Optional[str]:
    val = os.getenv(name, default)
    if isinstance(val, str):
        return val.strip().strip('"').strip("'")
    return val


# ================================================================
# Function: fncReadJSON
# Purpose : Load JSON from file safely
# Notes   : Returns {} on failure when safe=True
# ================================================================
def fncReadJSON(path: str, safe: bool = True) -> Dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except (OSError, ValueError) as ex:
        if safe:
            fncPrintMessage(f"Could not read JSON '{path}': {ex}", "warn")
            return {}
        raise


# ================================================================
# Function: fncWriteJSON
# Purpose : Write data to JSON with nice formatting
# Notes   : Ensures parent folder exists; UTF-8; 2-space indent
# ================================================================
def fncWriteJSON(path: str, data: Dict[str, Any]) -> None:
    p = pathlib.Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    with open(p, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, ensure_ascii=False, default=str)
    fncPrintMessage(f"Saved JSON → {p}", "success")


# ================================================================
# Function: fncExportCSV
# Purpose : Save list[dict] to CSV
# Notes   : Headers keep first-seen key order across all rows
# ================================================================
def fncExportCSV(path: str, rows: Iterable[Dict[str, Any]]) -> None:
    rows = list(rows)
    p = pathlib.Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)

    if not rows:
        p.write_text("", encoding="utf-8")
        fncPrintMessage(f"Created empty CSV → {p}", "warn")
        return

    # matrix rows carry different role columns, so union them in order
    headers = list(dict.fromkeys(k for r in rows for k in r.keys()))
    with open(p, "w", newline="", encoding="utf-8") as f:
        w = csv.DictWriter(f, fieldnames=headers)
        w.writeheader()
        for r in rows:
            w.writerow({k: r.get(k, "") for k in headers})

    fncPrintMessage(f"Saved CSV → {p}", "success")


# ================================================================
# Function: fncRetry
# Purpose : Simple retry wrapper with backoff
# Notes   : backoff in seconds; returns fn result or raises last error
# ================================================================
def fncRetry(fn, attempts: int = 3, backoff: float = 1.5, exceptions: Tuple = (Exception,)):
    for attempt in range(1, attempts + 1):
        try:
            return fn()
        except exceptions as ex:
            if attempt < attempts:
                sleep_for = backoff ** (attempt - 1)
                fncPrintMessage(f"Attempt {attempt}/{attempts} failed: {ex}. Retrying in {sleep_for:.1f}s…", "warn")
                time.sleep(sleep_for)
            else:
                fncPrintMessage(f"All {attempts} attempts failed: {ex}", "error")
                raise


# ================================================================
# Function: fncToTable
# Purpose : Render rows as a table string
# Notes   : Supports list[dict] (keys become headers) or list[list]
# ================================================================
def fncToTable(rows: Iterable[Any], headers: Optional[List[str]] = None, max_rows: Optional[int] = None) -> str:
    rows = list(rows)
    if not rows:
        return "(no data)"

    truncated = bool(max_rows and len(rows) > max_rows)
    if truncated:
        rows = rows[:max_rows]

    if isinstance(rows[0], dict):
        hdrs = headers or list(dict.fromkeys(k for r in rows for k in r.keys()))
        table_rows = [[r.get(h, "") for h in hdrs] for r in rows]
    else:
        hdrs = headers or []
        table_rows = [list(r) for r in rows]

    if truncated:
        table_rows.append(["…"] * max(1, len(hdrs) or len(table_rows[0])))
    return tabulate(table_rows, headers=hdrs, tablefmt="github")


# ================================================================
# Function: fncMask
# Purpose : Mask sensitive strings (client secrets, tokens)
# Notes   : Keeps start/end visible; handles short strings
# ================================================================
def fncMask(value: Optional[str], show: int = 4) -> str:
    if not value:
        return ""
    if len(value) <= show * 2:
        return "*" * len(value)
    return f"{value[:show]}{'*' * (len(value) - (show*2))}{value[-show:]}"


# ================================================================
# Function: fncNewRunId
# Purpose : Generate a short unique run identifier
# Notes   : Useful for correlating logs and outputs
# ================================================================
def fncNewRunId(prefix: str = "run") -> str:
    return f"{prefix}-{uuid.uuid4().hex[:8]}"
