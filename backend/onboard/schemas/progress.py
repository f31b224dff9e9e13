"""Schemas for end-user progress, plus validation of step verified_data.

verified_data is a tagged union keyed by step-type name:
  quizmaster_basic  → {answers, totalScore?, passed}
  quizmaster_ai     → {passed, ...}
  anything else     → free-form map
It is validated here, at the API boundary, before it is stored.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field, StrictBool

from onboard.models.enums import CredentialPlatform


class QuizmasterBasicData(BaseModel):
    answers: list[Any]
    total_score: float | None = Field(default=None, alias="totalScore")
    passed: StrictBool

    model_config = {"populate_by_name": True, "extra": "allow"}


class QuizmasterAiData(BaseModel):
    passed: StrictBool

    model_config = {"extra": "allow"}


VERIFIED_DATA_SCHEMAS: dict[str, type[BaseModel]] = {
    "quizmaster_basic": QuizmasterBasicData,
    "quizmaster_ai": QuizmasterAiData,
}


def parse_verified_data(step_type_name: str, raw: dict | None) -> dict | None:
    """Validate `raw` for the given step type and return the dict to store.

    Raises pydantic.ValidationError when a typed payload is malformed.
    """
    if raw is None:
        return None
    schema = VERIFIED_DATA_SCHEMAS.get(step_type_name)
    if schema is None:
        return dict(raw)
    return schema.model_validate(raw).model_dump(by_alias=True, exclude_none=True)


# ── Requests ────────────────────────────────────────────────

class StepCompleteRequest(BaseModel):
    verified_data: dict | None = None


# ── Responses ───────────────────────────────────────────────

class UserStepOut(BaseModel):
    id: str
    wizard_id: str
    step_type_id: str
    step_type_name: str | None
    step_order: int
    config: dict
    target_role_id: str | None
    is_mandatory: bool
    completed_at: datetime | None
    verified_data: dict | None
    can_proceed: bool


class UserWizardOut(BaseModel):
    id: str
    name: str
    description: str | None
    is_completed: bool


class WizardCompletionResult(BaseModel):
    success: bool = True
    wizard_id: str
    version: int
    roles: list[str]


class CompletionOut(BaseModel):
    wizard_id: str
    completed_at: datetime
    version: int

    model_config = {"from_attributes": True}


# ── Session resume ──────────────────────────────────────────

class WizardSessionUpdate(BaseModel):
    step_id: str = Field(min_length=1, alias="stepId")

    model_config = {"populate_by_name": True}


class WizardSessionOut(BaseModel):
    wizard_id: str
    last_viewed_step_id: str | None


# ── Linked credentials ──────────────────────────────────────

class CredentialOut(BaseModel):
    id: str
    platform: CredentialPlatform
    external_id: str
    username: str | None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class CredentialListOut(BaseModel):
    credentials: list[CredentialOut]


# ── Earnable roles ──────────────────────────────────────────

class GrantingWizardOut(BaseModel):
    wizard_id: str
    wizard_name: str


class EarnableRoleOut(BaseModel):
    role_id: str
    granting_wizards: list[GrantingWizardOut]


class EarnableRolesOut(BaseModel):
    earnable_roles: list[EarnableRoleOut]
