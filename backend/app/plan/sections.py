"""
Sectioned-markdown plan parser.

The model is asked to emit the plan as a run of blocks introduced by markers of
the form ``---SECTION: <key>---``. Each block runs until the next marker (any
marker, recognized or not) or the end of the text.

Contract:
- All twelve ``SECTION_KEYS`` are always present in the result; keys that never
  appear map to an empty string.
- Marker keys are matched case-insensitively, with ``-`` and spaces folded to
  ``_``. Unknown keys are dropped.
- When a key appears more than once the first occurrence wins.
- Inside the ``market`` section, ``TAM: ...`` / ``SAM: ...`` / ``SOM: ...`` lines
  are picked up as an optional market-sizing side structure.
- If no recognized key carries any content the text is rejected.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Dict, Tuple

from ..exceptions import PlanFormatError

SECTION_KEYS: Tuple[str, ...] = (
    "executive_summary",
    "problem",
    "solution",
    "market",
    "go_to_market",
    "business_model",
    "competition",
    "operations",
    "team",
    "risks",
    "milestones",
    "financials",
)

MARKET_SIZE_LABELS: Tuple[str, ...] = ("tam", "sam", "som")

SECTION_MARKER_RE = re.compile(r"---[ \t]*SECTION:[ \t]*(.+?)[ \t]*---", re.IGNORECASE)

MARKET_SIZE_LINE_RE = re.compile(
    r"^[ \t]*(?:[-*+][ \t]+)?(?:\*\*)?(TAM|SAM|SOM)(?:\*\*)?[ \t]*:[ \t]*(?:\*\*)?[ \t]*(.+?)[ \t]*$",
    re.IGNORECASE | re.MULTILINE,
)


@dataclass(frozen=True)
class SectionedPlan:
    sections: Dict[str, str]
    market_sizing: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {}
        for key in SECTION_KEYS:
            entry: Dict[str, Any] = {"markdown": self.sections.get(key, "")}
            if key == "market" and self.market_sizing:
                entry["tam_sam_som"] = dict(self.market_sizing)
            out[key] = entry
        return {"sections": out}


def normalize_section_key(raw_key: str) -> str:
    return re.sub(r"[\s\-]+", "_", raw_key.strip().lower())


def split_sections(text: str) -> Dict[str, str]:
    """Map every recognized key to its trimmed content ("" when absent)."""
    sections: Dict[str, str] = {key: "" for key in SECTION_KEYS}
    seen = set()
    matches = list(SECTION_MARKER_RE.finditer(text or ""))
    for idx, match in enumerate(matches):
        key = normalize_section_key(match.group(1))
        if key not in sections or key in seen:
            continue
        seen.add(key)
        end = matches[idx + 1].start() if idx + 1 < len(matches) else len(text)
        sections[key] = text[match.end():end].strip()
    return sections


def extract_market_sizing(market_text: str) -> Dict[str, str]:
    """Pick TAM/SAM/SOM values out of the market section; first line per label wins."""
    found: Dict[str, str] = {}
    for match in MARKET_SIZE_LINE_RE.finditer(market_text or ""):
        label = match.group(1).lower()
        if label in found:
            continue
        value = match.group(2).strip().strip("*").strip()
        if value:
            found[label] = value
    return {label: found[label] for label in MARKET_SIZE_LABELS if label in found}


def parse_sectioned_plan(text: Any) -> SectionedPlan:
    """Parse sectioned model output.

    Raises ``PlanFormatError`` when no recognized section carries content.
    """
    if not isinstance(text, str):
        raise PlanFormatError("Model returned unexpected format: expected text output")

    sections = split_sections(text)
    if not any(sections.values()):
        raise PlanFormatError("Model returned unexpected format: no sections detected")

    return SectionedPlan(
        sections=sections,
        market_sizing=extract_market_sizing(sections["market"]),
    )


__all__ = [
    "SECTION_KEYS",
    "SectionedPlan",
    "extract_market_sizing",
    "normalize_section_key",
    "parse_sectioned_plan",
    "split_sections",
]
