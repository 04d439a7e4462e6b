# ================================================================
# File     : module_loader.py
# Purpose  : Dynamically load and execute report modules
# Notes    : Modules live in modules/<provider>/<name>.py and expose
#            run(client, args). Files starting with '_' are skipped.
# ================================================================

import importlib
import pathlib
import traceback
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Dict, List, Any

from core.errors import FatalFetchError
from core.utils import fncPrintMessage

MODULES_ROOT = pathlib.Path(__file__).resolve().parent.parent / "modules"


# ================================================================
# Function: fncLoadModule
# Purpose : Dynamically import a module based on provider and name
# Notes   : Returns the imported module or None if not found
# ================================================================
def fncLoadModule(provider: str, module_name: str):
    mod_path = f"modules.{provider}.{module_name}"
    try:
        mod = importlib.import_module(mod_path)
    except ModuleNotFoundError:
        fncPrintMessage(f"Module not found: {provider}/{module_name}", "error")
        return None
    fncPrintMessage(f"Loaded module: {mod_path}", "debug")
    return mod


# ================================================================
# Function: fncRunModule
# Purpose : Execute a loaded module’s main 'run' function
# Notes   : Failures come back as {"error": ...} so run-all continues
# ================================================================
def fncRunModule(provider: str, module_name: str, client, args) -> Any:
    mod = fncLoadModule(provider, module_name)
    if not mod or not hasattr(mod, "run"):
        fncPrintMessage(f"Module {module_name} missing 'run' function.", "warn")
        return None

    fncPrintMessage(f"Starting module: {provider}/{module_name}", "info")
    try:
        result = mod.run(client, args)
    except FatalFetchError as ex:
        fncPrintMessage(f"Module {module_name} aborted — no report produced: {ex}", "error")
        return {"error": str(ex), "failedCollections": ex.collections}
    except Exception as ex:
        fncPrintMessage(f"Module {module_name} raised an exception: {ex}", "error")
        fncPrintMessage(traceback.format_exc(), "debug")
        return {"error": str(ex)}

    fncPrintMessage(f"Module complete: {provider}/{module_name}", "success")
    return result


# ================================================================
# Function: fncDiscoverModules
# Purpose : Discover available modules for a provider
# ================================================================
def fncDiscoverModules(provider: str, root: pathlib.Path = None) -> List[str]:
    base = (root or MODULES_ROOT) / provider
    if not base.is_dir():
        fncPrintMessage(f"No modules directory for provider '{provider}' (expected: {base})", "warn")
        return []

    mods = [
        p.stem for p in sorted(base.iterdir())
        if p.is_file() and p.suffix == ".py" and not p.name.startswith("_")
    ]
    fncPrintMessage(f"Discovered modules for {provider}: {mods}", "debug")
    return mods


# ================================================================
# Function: fncRunAllModules
# Purpose : Run every discovered module for a provider
# Notes   : Sequential by default; --parallel N uses a thread pool.
#           Returns { module_name: result_or_error }
# ================================================================
def fncRunAllModules(provider: str, client, args, skip_list: List[str] = None) -> Dict[str, Any]:
    skip_list = skip_list or []
    results: Dict[str, Any] = {}
    modules = fncDiscoverModules(provider)
    threads = int(getattr(args, "parallel", 1) or 1)

    if not modules:
        fncPrintMessage(f"No modules to run for provider '{provider}'", "warn")
        return results

    fncPrintMessage(f"Running {len(modules)} modules (parallel={threads})", "info")

    todo = []
    for mod in modules:
        if mod in skip_list:
            fncPrintMessage(f"Skipping {mod}", "debug")
            results[mod] = {"skipped": True}
        else:
            todo.append(mod)

    if threads <= 1:
        for mod in todo:
            results[mod] = fncRunModule(provider, mod, client, args)
    else:
        with ThreadPoolExecutor(max_workers=threads) as executor:
            futures = {executor.submit(fncRunModule, provider, mod, client, args): mod for mod in todo}
            for future in as_completed(futures):
                results[futures[future]] = future.result()

    fncPrintMessage("All modules completed.", "success")
    return results
