# ================================================================
# File     : handlers/graph/graph_helpers.py
# Purpose  : Safer Graph helpers (handle missing $select fields)
# Notes    : Warn instead of fail; missing fields come back as None.
# ================================================================

import re
from typing import List, Dict, Any, Optional, Tuple

from core.utils import fncPrintMessage

_MISSING_PROPERTY = re.compile(r"Could not find a property named '([^']+)'")


def build_endpoint(base_endpoint: str, fields: List[str], extra: Optional[str] = None) -> str:
    query = []
    if fields:
        query.append(f"$select={','.join(fields)}")
    if extra:
        query.append(extra)
    return f"{base_endpoint}?{'&'.join(query)}" if query else base_endpoint


def safe_select_get_all(client, base_endpoint: str, fields: List[str], extra: Optional[str] = None) -> Tuple[List[Dict[str, Any]], List[str]]:
    """
    Calls client.get_all with a $select list (plus optional extra query
    such as a $filter). If Graph rejects a selected property, drop it,
    retry, and return it as None on every row.
    Returns: (items, missing_fields)
    """
    try:
        items = client.get_all(build_endpoint(base_endpoint, fields, extra))
    except Exception as ex:
        m = _MISSING_PROPERTY.search(str(ex))
        if not m or m.group(1) not in fields:
            raise

        missing = m.group(1)
        fncPrintMessage(f"Property not found on {base_endpoint}: '{missing}' — retrying without it.", "warn")
        items, more_missing = safe_select_get_all(client, base_endpoint, [f for f in fields if f != missing], extra)
        for it in items:
            it[missing] = None
        return items, [missing] + more_missing

    for it in items:
        for f in fields:
            it.setdefault(f, None)
    return items, []
