from datetime import datetime, timezone

from sqlalchemy.orm import declarative_base
from sqlalchemy import Column, String, Text, Float, Integer, DateTime, ForeignKey, JSON
Base = declarative_base()

def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)

class BusinessPlan(Base):
    __tablename__ = "business_plans"
    id = Column(String(36), primary_key=True, index=True)
    # queued -> running -> done | error
    status = Column(String(20), nullable=False, default="queued", index=True)
    industry = Column(String(500), nullable=False)
    location = Column(String(500), nullable=False)
    vision = Column(String(500), nullable=True)
    language = Column(String(8), nullable=False, default="en")
    plan_format = Column(String(20), nullable=False, default="structured")

    gap = Column(Text, nullable=True)
    solution = Column(Text, nullable=True)
    vision_statement = Column(Text, nullable=True)
    mission = Column(Text, nullable=True)
    currency = Column(String(8), nullable=True)
    result_json = Column(JSON, nullable=True)

    error_message = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

class MarketAnalysis(Base):
    __tablename__ = "market_analysis"
    id = Column(String(36), primary_key=True)
    plan_id = Column(String(36), ForeignKey("business_plans.id"), nullable=False, index=True)
    tam = Column(Float, nullable=False)
    sam = Column(Float, nullable=False)
    som = Column(Float, nullable=False)

class SwotStatement(Base):
    __tablename__ = "swot_analysis"
    id = Column(String(36), primary_key=True)
    plan_id = Column(String(36), ForeignKey("business_plans.id"), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)
    # strength | weakness | opportunity | threat
    type = Column(String(20), nullable=False)
    statement = Column(Text, nullable=False)

class PestelFactor(Base):
    __tablename__ = "pestel_analysis"
    id = Column(String(36), primary_key=True)
    plan_id = Column(String(36), ForeignKey("business_plans.id"), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)
    factor = Column(String(255), nullable=False)
    description = Column(Text, nullable=False)

class PortersForce(Base):
    __tablename__ = "porters_five_forces"
    id = Column(String(36), primary_key=True)
    plan_id = Column(String(36), ForeignKey("business_plans.id"), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)
    force_name = Column(String(255), nullable=False)
    value = Column(Text, nullable=False)

class FinancialProjection(Base):
    __tablename__ = "financial_projections"
    id = Column(String(36), primary_key=True)
    plan_id = Column(String(36), ForeignKey("business_plans.id"), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)
    year = Column(String(32), nullable=False)
    revenue = Column(Float, nullable=False)
    cogs = Column(Float, nullable=False)
    opex = Column(Float, nullable=False)
    net_profit = Column(Float, nullable=False)

class RoadmapEntry(Base):
    __tablename__ = "roadmap"
    id = Column(String(36), primary_key=True)
    plan_id = Column(String(36), ForeignKey("business_plans.id"), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)
    year = Column(String(32), nullable=False)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=False)

class RiskEntry(Base):
    __tablename__ = "risks"
    id = Column(String(36), primary_key=True)
    plan_id = Column(String(36), ForeignKey("business_plans.id"), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)
    risk_factor = Column(Text, nullable=False)
    mitigation = Column(Text, nullable=False)
