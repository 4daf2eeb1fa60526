from __future__ import annotations

import json
from typing import Any, Optional


def dumps(obj: Any, *, indent: Optional[int] = None) -> str:
    """
    JSON dump of template values and CLI answers.

    ensure_ascii=False; compact separators unless indent is given.
    Values json cannot represent are stringified.
    """
    if indent is None:
        return json.dumps(obj, ensure_ascii=False, separators=(",", ":"), default=str)
    return json.dumps(obj, ensure_ascii=False, indent=indent, default=str)
