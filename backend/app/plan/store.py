"""
Business plan job store.

Every write is a guarded UPDATE on ``status`` (see ``services.plan_status``), so
a row only ever moves forward and a terminal row is never rewritten. The
structured result is decomposed into child tables; the parent update and all
child inserts share one transaction, so a reader never sees ``done`` with
partial children.
"""
from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Callable, Dict, List, Optional, Union

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..logger import logger
from ..models import (
    BusinessPlan,
    FinancialProjection,
    MarketAnalysis,
    PestelFactor,
    PortersForce,
    RiskEntry,
    RoadmapEntry,
    SwotStatement,
    utcnow,
)
from ..schemas import PlanInputs, PlanRow
from ..services.plan_status import (
    PLAN_STATUS_DONE,
    PLAN_STATUS_ERROR,
    PLAN_STATUS_QUEUED,
    PLAN_STATUS_RUNNING,
    allowed_predecessors,
)
from .sections import SectionedPlan
from .structured import StructuredPlan, flatten_swot, group_swot

SessionFactory = Callable[[], AsyncSession]
PlanResult = Union[StructuredPlan, SectionedPlan]

STALE_ERROR_MESSAGE = "Generation timed out"


def _new_id() -> str:
    return str(uuid.uuid4())


@dataclass
class PlanResultRows:
    market: Optional[MarketAnalysis] = None
    swot: List[SwotStatement] = field(default_factory=list)
    pestel: List[PestelFactor] = field(default_factory=list)
    porters: List[PortersForce] = field(default_factory=list)
    financial_projections: List[FinancialProjection] = field(default_factory=list)
    roadmap: List[RoadmapEntry] = field(default_factory=list)
    risks: List[RiskEntry] = field(default_factory=list)


def _structured_child_rows(plan_id: str, plan: StructuredPlan) -> List[Any]:
    rows: List[Any] = [
        MarketAnalysis(id=_new_id(), plan_id=plan_id, tam=plan.tam, sam=plan.sam, som=plan.som),
    ]
    for pos, (row_type, statement) in enumerate(flatten_swot(plan.swot)):
        rows.append(SwotStatement(id=_new_id(), plan_id=plan_id, position=pos, type=row_type, statement=statement))
    for pos, item in enumerate(plan.pestel):
        rows.append(PestelFactor(id=_new_id(), plan_id=plan_id, position=pos, factor=item.factor, description=item.description))
    for pos, item in enumerate(plan.porters):
        rows.append(PortersForce(id=_new_id(), plan_id=plan_id, position=pos, force_name=item.force_name, value=item.value))
    for pos, item in enumerate(plan.financialProjections):
        rows.append(
            FinancialProjection(
                id=_new_id(),
                plan_id=plan_id,
                position=pos,
                year=item.year,
                revenue=item.revenue,
                cogs=item.cogs,
                opex=item.opex,
                net_profit=item.netProfit,
            )
        )
    for pos, item in enumerate(plan.roadmap):
        rows.append(RoadmapEntry(id=_new_id(), plan_id=plan_id, position=pos, year=item.year, title=item.title, description=item.description))
    for pos, item in enumerate(plan.risks):
        rows.append(RiskEntry(id=_new_id(), plan_id=plan_id, position=pos, risk_factor=item.risk_factor, mitigation=item.mitigation))
    return rows


def assemble_structured_result(plan: BusinessPlan, rows: PlanResultRows) -> Dict[str, Any]:
    market = rows.market
    return {
        "gap": plan.gap,
        "solution": plan.solution,
        "vision": plan.vision_statement,
        "mission": plan.mission,
        "currency": plan.currency,
        "tam": market.tam if market else None,
        "sam": market.sam if market else None,
        "som": market.som if market else None,
        "swot": group_swot([(s.type, s.statement) for s in rows.swot]),
        "pestel": [{"factor": p.factor, "description": p.description} for p in rows.pestel],
        "porters": [{"force_name": p.force_name, "value": p.value} for p in rows.porters],
        "financialProjections": [
            {
                "year": f.year,
                "revenue": f.revenue,
                "cogs": f.cogs,
                "opex": f.opex,
                "netProfit": f.net_profit,
            }
            for f in rows.financial_projections
        ],
        "roadmap": [{"year": r.year, "title": r.title, "description": r.description} for r in rows.roadmap],
        "risks": [{"risk_factor": r.risk_factor, "mitigation": r.mitigation} for r in rows.risks],
    }


class PlanStore:
    def __init__(self, session_factory: SessionFactory):
        self._session_factory = session_factory

    async def insert(self, plan_id: str, status: str, inputs: PlanInputs, plan_format: str) -> BusinessPlan:
        plan = BusinessPlan(
            id=plan_id,
            status=status,
            industry=inputs.industry,
            location=inputs.location,
            vision=inputs.vision,
            language=inputs.language,
            plan_format=plan_format,
        )
        async with self._session_factory() as db:
            db.add(plan)
            await db.commit()
            await db.refresh(plan)
        logger.info("plan.inserted", extra={"plan_id": plan_id, "status": status, "plan_format": plan_format})
        return plan

    async def _guarded_update(self, db: AsyncSession, plan_id: str, status: str, **values: Any) -> bool:
        result = await db.execute(
            update(BusinessPlan)
            .where(
                BusinessPlan.id == plan_id,
                BusinessPlan.status.in_(allowed_predecessors(status)),
            )
            .values(status=status, updated_at=utcnow(), **values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def update_status(self, plan_id: str, status: str) -> bool:
        async with self._session_factory() as db:
            applied = await self._guarded_update(db, plan_id, status)
            await db.commit()
        if not applied:
            logger.warning("plan.status_update_skipped", extra={"plan_id": plan_id, "status": status})
        return applied

    async def update_result(self, plan_id: str, status: str, result: PlanResult) -> bool:
        """Write the parsed result and terminal status in one transaction."""
        async with self._session_factory() as db:
            if isinstance(result, StructuredPlan):
                applied = await self._guarded_update(
                    db,
                    plan_id,
                    status,
                    gap=result.gap,
                    solution=result.solution,
                    vision_statement=result.vision,
                    mission=result.mission,
                    currency=result.currency,
                )
                if applied:
                    db.add_all(_structured_child_rows(plan_id, result))
            else:
                applied = await self._guarded_update(db, plan_id, status, result_json=result.to_dict())

            if not applied:
                await db.rollback()
                logger.warning("plan.result_write_skipped", extra={"plan_id": plan_id, "status": status})
                return False
            await db.commit()
        logger.info("plan.completed", extra={"plan_id": plan_id})
        return True

    async def update_error(self, plan_id: str, status: str, error_message: str) -> bool:
        async with self._session_factory() as db:
            applied = await self._guarded_update(db, plan_id, status, error_message=error_message)
            await db.commit()
        if applied:
            logger.error("plan.failed", extra={"plan_id": plan_id, "error": error_message})
        else:
            logger.warning("plan.error_write_skipped", extra={"plan_id": plan_id, "error": error_message})
        return applied

    async def get_by_id(self, plan_id: str) -> Optional[BusinessPlan]:
        async with self._session_factory() as db:
            res = await db.execute(select(BusinessPlan).filter(BusinessPlan.id == plan_id))
            return res.scalar_one_or_none()

    async def get_result_rows(self, plan_id: str) -> PlanResultRows:
        async with self._session_factory() as db:
            async def _ordered(model):
                res = await db.execute(select(model).filter(model.plan_id == plan_id).order_by(model.position))
                return list(res.scalars().all())

            market_res = await db.execute(select(MarketAnalysis).filter(MarketAnalysis.plan_id == plan_id))
            return PlanResultRows(
                market=market_res.scalars().first(),
                swot=await _ordered(SwotStatement),
                pestel=await _ordered(PestelFactor),
                porters=await _ordered(PortersForce),
                financial_projections=await _ordered(FinancialProjection),
                roadmap=await _ordered(RoadmapEntry),
                risks=await _ordered(RiskEntry),
            )

    async def get_plan_view(self, plan_id: str) -> Optional[Dict[str, Any]]:
        """Poll body: the raw row, with the assembled ``result`` once the plan is done."""
        plan = await self.get_by_id(plan_id)
        if plan is None:
            return None

        row = PlanRow.model_validate(plan, from_attributes=True).model_dump(mode="json")
        if plan.status != PLAN_STATUS_DONE:
            return row

        if plan.plan_format == "sectioned":
            result = plan.result_json
        else:
            result = assemble_structured_result(plan, await self.get_result_rows(plan_id))
        return {**row, "result": result}

    async def fail_stale(self, max_running_seconds: int) -> int:
        """Mark queued/running plans untouched for longer than the limit as errored."""
        cutoff = utcnow() - timedelta(seconds=max_running_seconds)
        async with self._session_factory() as db:
            result = await db.execute(
                update(BusinessPlan)
                .where(
                    BusinessPlan.status.in_((PLAN_STATUS_QUEUED, PLAN_STATUS_RUNNING)),
                    BusinessPlan.updated_at < cutoff,
                )
                .values(status=PLAN_STATUS_ERROR, error_message=STALE_ERROR_MESSAGE, updated_at=utcnow())
                .execution_options(synchronize_session=False)
            )
            await db.commit()
        count = result.rowcount or 0
        if count > 0:
            logger.warning("plan.stale_failed", extra={"count": count, "max_running_seconds": max_running_seconds})
        return count
