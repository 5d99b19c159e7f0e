from __future__ import annotations

import json


def parse_json_records(data: bytes | str) -> list[dict]:
    doc = json.loads(data)
    if isinstance(doc, list):
        return [item for item in doc if isinstance(item, dict)]
    if isinstance(doc, dict):
        for key in (
            "alerts",
            "items",
            "features",
            "data",
            "entries",
        ):
            value = doc.get(key)
            if isinstance(value, list):
                return [item for item in value if isinstance(item, dict)]
        return [doc]
    return []
