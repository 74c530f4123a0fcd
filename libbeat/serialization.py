from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Any


def document_json(document: Mapping[str, Any], *, pretty: bool = False) -> str:
    if pretty:
        return json.dumps(document, indent=2, ensure_ascii=False)
    return json.dumps(document, separators=(",", ":"), ensure_ascii=False)
