"""Aggregate model imports for Alembic auto-detection and create_all()."""

from onboard.models.billing import Plan, PlanLimit, UsageEvent  # noqa: F401
from onboard.models.community import Community  # noqa: F401
from onboard.models.credential import UserLinkedCredential  # noqa: F401
from onboard.models.enums import CredentialPlatform, Feature  # noqa: F401
from onboard.models.progress import (  # noqa: F401
    UserStepProgress,
    UserWizardCompletion,
    UserWizardSession,
)
from onboard.models.step_type import StepType  # noqa: F401
from onboard.models.wizard import Step, Wizard  # noqa: F401
