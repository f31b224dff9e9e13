"""Step progression: the can_proceed decision table and step completion."""

from datetime import datetime
from types import SimpleNamespace

import pytest
from pydantic import ValidationError
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from onboard.middleware.exceptions import InvalidRequestError, ResourceNotFoundError
from onboard.models.credential import UserLinkedCredential
from onboard.models.enums import CredentialPlatform
from onboard.models.progress import UserStepProgress
from onboard.services.progression import (
    StepDefinition,
    can_proceed,
    complete_step,
    complete_wizard,
    get_wizard_session,
    list_credentials,
    list_earnable_roles,
    list_user_steps,
    save_wizard_session,
)

from tests.conftest import COMMUNITY_ID, OTHER_COMMUNITY_ID, USER_ID

DONE = datetime(2026, 1, 1, 12, 0, 0)


def progress(completed_at=DONE, verified_data=None):
    return SimpleNamespace(completed_at=completed_at, verified_data=verified_data)


MANDATORY_QUIZ = StepDefinition(is_mandatory=True, step_type_name="quizmaster_basic")
MANDATORY_AI_QUIZ = StepDefinition(is_mandatory=True, step_type_name="quizmaster_ai")
MANDATORY_CONTENT = StepDefinition(is_mandatory=True, step_type_name="content")
OPTIONAL_QUIZ = StepDefinition(is_mandatory=False, step_type_name="quizmaster_basic")


@pytest.mark.unit
class TestCanProceed:

    def test_no_progress_never_proceeds(self):
        assert can_proceed(None, MANDATORY_CONTENT) is False
        assert can_proceed(None, OPTIONAL_QUIZ) is False
        assert can_proceed(None, None) is False

    def test_optional_step_needs_only_completion(self):
        assert can_proceed(progress(), OPTIONAL_QUIZ) is True
        assert can_proceed(progress(verified_data={"passed": False}), OPTIONAL_QUIZ) is True
        assert can_proceed(progress(completed_at=None), OPTIONAL_QUIZ) is False

    def test_mandatory_step_not_completed(self):
        assert can_proceed(progress(completed_at=None), MANDATORY_CONTENT) is False
        assert (
            can_proceed(progress(completed_at=None, verified_data={"passed": True}), MANDATORY_QUIZ)
            is False
        )

    def test_mandatory_non_quiz_completed(self):
        assert can_proceed(progress(), MANDATORY_CONTENT) is True
        discord = StepDefinition(is_mandatory=True, step_type_name="discord")
        assert can_proceed(progress(verified_data={"discordId": "1"}), discord) is True

    def test_unknown_step_type_fails_closed(self):
        unknown = StepDefinition(is_mandatory=True, step_type_name=None)
        assert can_proceed(progress(), unknown) is False

    def test_missing_definition_fails_closed(self):
        assert can_proceed(progress(verified_data={"passed": True}), None) is False

    @pytest.mark.parametrize("definition", [MANDATORY_QUIZ, MANDATORY_AI_QUIZ])
    def test_quiz_requires_passed_true(self, definition):
        assert can_proceed(progress(verified_data={"passed": True}), definition) is True
        assert can_proceed(progress(verified_data={"passed": False}), definition) is False
        assert can_proceed(progress(verified_data={}), definition) is False
        assert can_proceed(progress(verified_data=None), definition) is False

    def test_quiz_passed_must_be_boolean_true(self):
        assert can_proceed(progress(verified_data={"passed": "true"}), MANDATORY_QUIZ) is False
        assert can_proceed(progress(verified_data={"passed": 1}), MANDATORY_QUIZ) is False


@pytest.mark.integration
@pytest.mark.asyncio
class TestCompleteStep:

    async def test_failed_quiz_then_passed_quiz(self, db_session: AsyncSession, make_wizard):
        wizard, (quiz,) = await make_wizard([("quizmaster_basic", True, None)])

        await complete_step(
            db_session, USER_ID, COMMUNITY_ID, wizard.id, quiz.id,
            verified_data={"answers": [1, 2], "totalScore": 1, "passed": False},
        )
        steps = await list_user_steps(db_session, USER_ID, COMMUNITY_ID, wizard.id)
        assert steps[0].completed_at is not None
        assert steps[0].can_proceed is False

        await complete_step(
            db_session, USER_ID, COMMUNITY_ID, wizard.id, quiz.id,
            verified_data={"answers": [1, 3], "totalScore": 2, "passed": True},
        )
        steps = await list_user_steps(db_session, USER_ID, COMMUNITY_ID, wizard.id)
        assert steps[0].can_proceed is True
        assert steps[0].verified_data["totalScore"] == 2

        count = await db_session.scalar(
            select(func.count()).select_from(UserStepProgress).where(
                UserStepProgress.user_id == USER_ID,
                UserStepProgress.step_id == quiz.id,
            )
        )
        assert count == 1

    async def test_quiz_payload_is_validated(self, db_session: AsyncSession, make_wizard):
        wizard, (quiz,) = await make_wizard([("quizmaster_basic", True, None)])

        with pytest.raises(ValidationError):
            await complete_step(
                db_session, USER_ID, COMMUNITY_ID, wizard.id, quiz.id,
                verified_data={"answers": [], "passed": "yes"},
            )

    async def test_step_without_payload(self, db_session: AsyncSession, make_wizard):
        wizard, (content,) = await make_wizard([("content", True, None)])

        await complete_step(db_session, USER_ID, COMMUNITY_ID, wizard.id, content.id)

        steps = await list_user_steps(db_session, USER_ID, COMMUNITY_ID, wizard.id)
        assert steps[0].can_proceed is True
        assert steps[0].verified_data is None

    async def test_step_of_other_community_not_found(
        self, db_session: AsyncSession, make_wizard
    ):
        wizard, (content,) = await make_wizard(
            [("content", True, None)], community_id=OTHER_COMMUNITY_ID
        )

        with pytest.raises(ResourceNotFoundError):
            await complete_step(db_session, USER_ID, COMMUNITY_ID, wizard.id, content.id)

    async def test_step_of_other_wizard_not_found(self, db_session: AsyncSession, make_wizard):
        first, _ = await make_wizard([("content", True, None)], name="First")
        _, (other_step,) = await make_wizard([("content", True, None)], name="Second")

        with pytest.raises(ResourceNotFoundError):
            await complete_step(db_session, USER_ID, COMMUNITY_ID, first.id, other_step.id)

    async def test_credential_step_links_credential(
        self, db_session: AsyncSession, make_wizard
    ):
        wizard, (ens,) = await make_wizard([("ens", True, None)])

        await complete_step(
            db_session, USER_ID, COMMUNITY_ID, wizard.id, ens.id,
            verified_data={"ensName": "alice.eth"},
        )
        await complete_step(
            db_session, USER_ID, COMMUNITY_ID, wizard.id, ens.id,
            verified_data={"ensName": "alice2.eth"},
        )

        result = await db_session.execute(
            select(UserLinkedCredential)
            .where(UserLinkedCredential.user_id == USER_ID)
            .execution_options(populate_existing=True)
        )
        credentials = result.scalars().all()
        assert len(credentials) == 1
        assert credentials[0].platform == CredentialPlatform.ENS
        assert credentials[0].external_id == "alice2.eth"

    async def test_inactive_steps_are_hidden(self, db_session: AsyncSession, make_wizard):
        wizard, steps = await make_wizard(
            [("content", True, None), ("discord", True, None)]
        )
        steps[1].is_active = False
        await db_session.flush()

        listed = await list_user_steps(db_session, USER_ID, COMMUNITY_ID, wizard.id)
        assert [s.id for s in listed] == [steps[0].id]
        assert listed[0].step_type_name == "content"


@pytest.mark.integration
@pytest.mark.asyncio
class TestWizardSession:

    async def test_unopened_wizard_has_no_session(
        self, db_session: AsyncSession, make_wizard
    ):
        wizard, _ = await make_wizard([("content", True, None)])

        session = await get_wizard_session(db_session, USER_ID, COMMUNITY_ID, wizard.id)

        assert session.last_viewed_step_id is None

    async def test_last_viewed_step_is_overwritten(
        self, db_session: AsyncSession, make_wizard
    ):
        wizard, (first, second) = await make_wizard(
            [("content", True, None), ("discord", True, None)]
        )

        await save_wizard_session(db_session, USER_ID, COMMUNITY_ID, wizard.id, first.id)
        await save_wizard_session(db_session, USER_ID, COMMUNITY_ID, wizard.id, second.id)

        session = await get_wizard_session(db_session, USER_ID, COMMUNITY_ID, wizard.id)
        assert session.last_viewed_step_id == second.id
        other_user = await get_wizard_session(db_session, "user-2", COMMUNITY_ID, wizard.id)
        assert other_user.last_viewed_step_id is None

    async def test_step_of_other_wizard_rejected(
        self, db_session: AsyncSession, make_wizard
    ):
        wizard, _ = await make_wizard([("content", True, None)], name="First")
        _, (foreign,) = await make_wizard([("content", True, None)], name="Second")

        with pytest.raises(InvalidRequestError) as exc_info:
            await save_wizard_session(
                db_session, USER_ID, COMMUNITY_ID, wizard.id, foreign.id
            )

        assert exc_info.value.error_code == "STEP_NOT_IN_WIZARD"

    async def test_wizard_of_other_community_not_found(
        self, db_session: AsyncSession, make_wizard
    ):
        wizard, (step,) = await make_wizard(
            [("content", True, None)], community_id=OTHER_COMMUNITY_ID
        )

        with pytest.raises(ResourceNotFoundError):
            await save_wizard_session(db_session, USER_ID, COMMUNITY_ID, wizard.id, step.id)
        with pytest.raises(ResourceNotFoundError):
            await get_wizard_session(db_session, USER_ID, COMMUNITY_ID, wizard.id)


@pytest.mark.integration
@pytest.mark.asyncio
class TestCredentials:

    async def test_lists_linked_credentials(self, db_session: AsyncSession, make_wizard):
        wizard, (ens, discord) = await make_wizard(
            [("ens", True, None), ("discord", True, None)]
        )
        await complete_step(
            db_session, USER_ID, COMMUNITY_ID, wizard.id, ens.id,
            verified_data={"ensName": "alice.eth"},
        )
        await complete_step(
            db_session, USER_ID, COMMUNITY_ID, wizard.id, discord.id,
            verified_data={"discordId": "42", "discordUsername": "alice"},
        )

        listed = await list_credentials(db_session, USER_ID)

        by_platform = {c.platform: c for c in listed.credentials}
        assert set(by_platform) == {CredentialPlatform.ENS, CredentialPlatform.DISCORD}
        assert by_platform[CredentialPlatform.DISCORD].username == "alice"

    async def test_no_credentials_for_other_user(self, db_session: AsyncSession):
        listed = await list_credentials(db_session, "nobody")

        assert listed.credentials == []


@pytest.mark.integration
@pytest.mark.asyncio
class TestEarnableRoles:

    async def test_groups_wizards_by_role(self, db_session: AsyncSession, make_wizard):
        first, _ = await make_wizard(
            [("content", True, "role-member"), ("discord", False, "role-discord")],
            name="First",
        )
        second, _ = await make_wizard([("content", True, "role-member")], name="Second")

        result = await list_earnable_roles(db_session, USER_ID, COMMUNITY_ID)

        roles = {r.role_id: [w.wizard_id for w in r.granting_wizards] for r in result.earnable_roles}
        assert roles == {
            "role-discord": [first.id],
            "role-member": [first.id, second.id],
        }

    async def test_skips_held_roles_and_completed_wizards(
        self, db_session: AsyncSession, make_wizard
    ):
        done, (step,) = await make_wizard([("content", True, "role-a")], name="Done")
        await make_wizard([("content", True, "role-b")], name="Open")
        await make_wizard([("content", True, "role-c")], name="Held")
        await make_wizard([("content", True, "role-d")], name="Draft", is_active=False)
        await complete_step(db_session, USER_ID, COMMUNITY_ID, done.id, step.id)
        await complete_wizard(db_session, USER_ID, COMMUNITY_ID, done.id)

        result = await list_earnable_roles(
            db_session, USER_ID, COMMUNITY_ID, held_role_ids=["role-c"]
        )

        assert [r.role_id for r in result.earnable_roles] == ["role-b"]
