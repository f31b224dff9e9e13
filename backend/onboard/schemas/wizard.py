"""Pydantic schemas for admin wizard / step management."""

from datetime import datetime

from pydantic import BaseModel, Field, field_validator


# ── Wizards ─────────────────────────────────────────────────

class WizardCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    description: str | None = None
    is_active: bool = False
    assign_roles_per_step: bool = False


class WizardUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    is_active: bool | None = None
    assign_roles_per_step: bool | None = None


class WizardOut(BaseModel):
    id: str
    community_id: str
    name: str
    description: str | None
    is_active: bool
    assign_roles_per_step: bool
    created_at: datetime | None = None

    model_config = {"from_attributes": True}


# ── Steps ───────────────────────────────────────────────────

class StepCreate(BaseModel):
    step_type_id: str
    config: dict = {}
    target_role_id: str | None = None
    is_mandatory: bool = True
    is_active: bool = True


class StepUpdate(BaseModel):
    step_type_id: str | None = None
    config: dict | None = None
    target_role_id: str | None = None
    is_mandatory: bool | None = None
    is_active: bool | None = None


class StepOut(BaseModel):
    id: str
    wizard_id: str
    step_type_id: str
    step_order: int
    config: dict
    target_role_id: str | None
    is_mandatory: bool
    is_active: bool

    model_config = {"from_attributes": True}


class StepReorderRequest(BaseModel):
    step_ids: list[str] = Field(alias="stepIds")

    model_config = {"populate_by_name": True}

    @field_validator("step_ids")
    @classmethod
    def no_duplicates(cls, v: list[str]) -> list[str]:
        if len(set(v)) != len(v):
            raise ValueError("stepIds must not contain duplicates")
        return v


# ── Step types ──────────────────────────────────────────────

class StepTypeOut(BaseModel):
    id: str
    name: str
    label: str | None
    description: str | None
    requires_credentials: bool

    model_config = {"from_attributes": True}
