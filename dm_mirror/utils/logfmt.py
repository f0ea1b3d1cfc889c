from __future__ import annotations

import json
from typing import Any


def quote_value(value: Any) -> str:
    if value is None:
        return "NA"
    # bool first: it is also an int
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    try:
        s = json.dumps(str(value), ensure_ascii=False)
        if len(s) >= 2 and s[0] == '"' and s[-1] == '"':
            s = s[1:-1]
        return f'"{s}"'
    except Exception:
        return f'"{str(value)}"'


def fmt(key: str, value: Any) -> str:
    return f"{key}={quote_value(value)}"


def kv(**pairs: Any) -> str:
    """Render several key=value pairs in call order, e.g. kv(msg=1, user="a")."""
    return " ".join(fmt(k, v) for k, v in pairs.items())
