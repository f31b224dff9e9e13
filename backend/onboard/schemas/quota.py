"""Schemas for quota decisions and usage reporting."""

from pydantic import BaseModel

from onboard.models.enums import Feature


class QuotaCheckRequest(BaseModel):
    feature: Feature
    # Evaluate against another plan (e.g. an upgrade preview)
    plan_code: str | None = None


class UsageRecordRequest(BaseModel):
    feature: Feature
    idempotency_key: str | None = None


class QuotaDecisionOut(BaseModel):
    allowed: bool
    feature: Feature
    plan_id: int | None
    current_usage: int
    limit: int | None
    window_description: str


class UsageEventOut(BaseModel):
    id: str
    feature: Feature
    community_id: str
    user_id: str

    model_config = {"from_attributes": True}


class PlanLimitOut(BaseModel):
    feature: Feature
    window: str
    hard_limit: int


class PlanOut(BaseModel):
    id: int
    code: str
    name: str
    price_cents: int
    limits: list[PlanLimitOut]


class FeatureUsageOut(BaseModel):
    feature: Feature
    current_usage: int
    limit: int | None
    window_description: str


class QuotaUsageOut(BaseModel):
    current_plan_id: int | None
    usage: list[FeatureUsageOut]
    plans: list[PlanOut]
