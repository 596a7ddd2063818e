import re
from typing import Optional

_OBJECT_RE = re.compile(r'\{.*\}', re.S)
_FENCE_RE = re.compile(r'```(?:json)?\s*(.*?)```', re.S | re.I)


def extract_json(text: str) -> Optional[str]:
    """Return the outermost {...} span of model text, looking inside ``` fences first."""
    fenced = _FENCE_RE.search(text)
    if fenced:
        text = fenced.group(1)
    m = _OBJECT_RE.search(text)
    return m.group(0).strip() if m else None
