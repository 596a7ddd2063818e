"""
Schema-constrained business plan.

The model is asked to answer with an object conforming to ``StructuredPlan``'s
JSON schema. Parsing reduces to validation plus reshaping into storage rows.
"""
from __future__ import annotations

import json
from typing import Any, Dict, List, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..exceptions import PlanFormatError
from ..inference.json_guard import extract_json

PROJECTION_YEARS = 5

# plural SWOT category -> singular row tag
SWOT_TYPES: Dict[str, str] = {
    "strengths": "strength",
    "weaknesses": "weakness",
    "opportunities": "opportunity",
    "threats": "threat",
}


class Swot(BaseModel):
    strengths: List[str]
    weaknesses: List[str]
    opportunities: List[str]
    threats: List[str]


class PestelItem(BaseModel):
    factor: str
    description: str


class PortersForceItem(BaseModel):
    force_name: str
    value: str


class FinancialYear(BaseModel):
    model_config = ConfigDict(allow_inf_nan=False)

    year: str
    revenue: float
    cogs: float
    opex: float
    netProfit: float


class RoadmapItem(BaseModel):
    year: str
    title: str
    description: str


class RiskItem(BaseModel):
    risk_factor: str
    mitigation: str


class StructuredPlan(BaseModel):
    # json.loads accepts NaN/Infinity literals
    model_config = ConfigDict(allow_inf_nan=False)

    gap: str = Field(description="A concise paragraph identifying a gap in the market.")
    solution: str = Field(description="A concise paragraph describing the business's solution to the gap.")
    vision: str
    mission: str
    currency: str = Field(description="The currency for financial figures (e.g., 'USD').")
    tam: float = Field(description="Total Addressable Market size as a numeric value.")
    sam: float = Field(description="Serviceable Addressable Market size as a numeric value.")
    som: float = Field(description="Serviceable Obtainable Market size as a numeric value.")
    swot: Swot
    pestel: List[PestelItem]
    porters: List[PortersForceItem]
    financialProjections: List[FinancialYear] = Field(min_length=PROJECTION_YEARS, max_length=PROJECTION_YEARS)
    roadmap: List[RoadmapItem] = Field(min_length=PROJECTION_YEARS, max_length=PROJECTION_YEARS)
    risks: List[RiskItem]


def plan_json_schema() -> Dict[str, Any]:
    """JSON schema handed to the model's response_format."""
    return StructuredPlan.model_json_schema()


def _describe_validation_error(exc: ValidationError) -> str:
    first = exc.errors()[0]
    loc = ".".join(str(part) for part in first.get("loc", ())) or "<root>"
    return f"Model returned unexpected format: field '{loc}': {first.get('msg', 'invalid')}"


def _coerce_payload(raw: Any) -> Dict[str, Any]:
    if isinstance(raw, dict):
        return raw
    if isinstance(raw, str):
        candidate = extract_json(raw)
        if candidate is None:
            raise PlanFormatError("Model returned unexpected format: no JSON object in output")
        try:
            data = json.loads(candidate)
        except json.JSONDecodeError as e:
            raise PlanFormatError(f"Model returned unexpected format: invalid JSON ({e.msg})")
        if isinstance(data, dict):
            return data
    raise PlanFormatError("Model returned unexpected format: expected a JSON object")


def parse_structured_plan(raw: Any) -> StructuredPlan:
    """Validate a model response (object or JSON text) against ``StructuredPlan``.

    Raises ``PlanFormatError`` naming the first offending field.
    """
    data = _coerce_payload(raw)
    try:
        return StructuredPlan.model_validate(data)
    except ValidationError as e:
        raise PlanFormatError(_describe_validation_error(e))


def flatten_swot(swot: Swot) -> List[Tuple[str, str]]:
    """(type, statement) pairs in category order, then model order."""
    rows: List[Tuple[str, str]] = []
    for plural, singular in SWOT_TYPES.items():
        for statement in getattr(swot, plural):
            rows.append((singular, statement))
    return rows


def group_swot(rows: List[Tuple[str, str]]) -> Dict[str, List[str]]:
    """Inverse of ``flatten_swot``; every category is present even when empty."""
    plural_by_type = {singular: plural for plural, singular in SWOT_TYPES.items()}
    swot: Dict[str, List[str]] = {plural: [] for plural in SWOT_TYPES}
    for row_type, statement in rows:
        plural = plural_by_type.get(row_type)
        if plural:
            swot[plural].append(statement)
    return swot
