# ================================================================
# File     : config.py
# Purpose  : Configuration management for RoleCall
# Notes    : Handles initial creation, loading, env and CLI overrides
# ================================================================

import pathlib
from typing import Any, Dict

from core.utils import fncPrintMessage, fncEnsureFolder, fncReadJSON, fncWriteJSON, fncLoadEnv

ROLECALL_HOME = pathlib.Path.home() / ".rolecall"


# ================================================================
# Function: fncDefaultConfig
# Purpose : Return a default configuration dictionary
# Notes   : Called when config file does not exist
# ================================================================
def fncDefaultConfig() -> dict:
    return {
        "version": "1.0",
        "rolecall_home": str(ROLECALL_HOME),
        "debug": False,
        "providers": {
            "entra": {
                "tenant_id": "",
                "client_id": "",
                "client_secret": "",
                "authority": "https://login.microsoftonline.com"
            }
        },
        "roles": {
            "role_assignable_groups_only": False,
            "expand_group_members": True,
            "parallel_group_fetch": 1,
            "history_days": 30
        }
    }


def _merge_defaults(cfg: Dict[str, Any], defaults: Dict[str, Any]) -> Dict[str, Any]:
    for key, value in defaults.items():
        if isinstance(value, dict):
            current = cfg.get(key)
            cfg[key] = _merge_defaults(current if isinstance(current, dict) else {}, value)
        else:
            cfg.setdefault(key, value)
    return cfg


# ================================================================
# Function: fncInitConfig
# Purpose : Create or load configuration file
# Notes   : Ensures base folder exists; returns full config dict
# ================================================================
def fncInitConfig(config_path: str = None) -> dict:
    path = pathlib.Path(config_path or ROLECALL_HOME / "config.json")
    fncEnsureFolder(path.parent)

    if not path.exists():
        fncPrintMessage(f"No config found at {path}. Creating default...", "warn")
        cfg = fncDefaultConfig()
        fncWriteJSON(str(path), cfg)
        return fncLoadConfig(str(path))
    return fncLoadConfig(str(path))


# ================================================================
# Function: fncLoadConfig
# Purpose : Load configuration file and apply environment overrides
# Notes   : ROLECALL_* wins over ENTRA_* which wins over the file
# ================================================================
def fncLoadConfig(config_path: str) -> dict:
    cfg = _merge_defaults(fncReadJSON(config_path), fncDefaultConfig())
    entra = cfg["providers"]["entra"]

    for key, names in {
        "tenant_id": ("ROLECALL_TENANT_ID", "ENTRA_TENANT_ID"),
        "client_id": ("ROLECALL_CLIENT_ID", "ENTRA_CLIENT_ID"),
        "client_secret": ("ROLECALL_CLIENT_SECRET", "ENTRA_CLIENT_SECRET"),
    }.items():
        for name in names:
            val = fncLoadEnv(name)
            if val:
                entra[key] = val
                break

    fncPrintMessage(f"Loaded configuration from {config_path}", "debug")
    return cfg


# ================================================================
# Function: fncGetProviderConfig
# Purpose : Return config block for a specific provider
# ================================================================
def fncGetProviderConfig(cfg: dict, provider: str) -> dict:
    providers = cfg.get("providers", {})
    if provider not in providers:
        fncPrintMessage(f"Provider not found in config: {provider}", "warn")
        return {}
    return providers[provider]


# ================================================================
# Function: fncApplyCliOverrides
# Purpose : Apply command-line flags to the loaded config
# Notes   : Only flags the user actually passed override the file
# ================================================================
def fncApplyCliOverrides(cfg: dict, args) -> dict:
    if getattr(args, "debug", False):
        cfg["debug"] = True

    roles = cfg.setdefault("roles", {})
    if getattr(args, "role_assignable_groups", False):
        roles["role_assignable_groups_only"] = True
    if getattr(args, "no_group_expansion", False):
        roles["expand_group_members"] = False
    if getattr(args, "group_workers", None) is not None:
        roles["parallel_group_fetch"] = int(args.group_workers)
    if getattr(args, "history_days", None) is not None:
        roles["history_days"] = int(args.history_days)
    return cfg


# ================================================================
# Function: fncGetRoleOptions
# Purpose : Resolver keyword options from the 'roles' config block
# ================================================================
def fncGetRoleOptions(cfg: dict) -> dict:
    roles = cfg.get("roles") or {}
    return {
        "role_assignable_groups_only": bool(roles.get("role_assignable_groups_only", False)),
        "expand_groups": bool(roles.get("expand_group_members", True)),
        "parallel": max(1, int(roles.get("parallel_group_fetch") or 1)),
    }


# ================================================================
# Function: fncIsDebug
# Purpose : Return whether debug mode is enabled in config
# ================================================================
def fncIsDebug(cfg: dict) -> bool:
    return bool(cfg.get("debug", False))
