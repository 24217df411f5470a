"""
Tests for the best-effort project save coordinator.
"""

import pytest

from core import (
    MemberDetails,
    PermissionDeniedError,
    Profile,
    Project,
    ProjectSaveCoordinator,
    ProjectSaveRequest,
    WriteError,
)
from core.constants import NOTIFICATIONS, PROFILES, PROJECT_MEMBERS, PROJECTS
from core.projects import CREATOR_MEMBERSHIP_MESSAGE, PERMISSION_MESSAGE

from fakes import ADMIN_ID, EMPLOYEE_ID, profile_row

SECOND_ADMIN_ID = "user-admin-2"
OTHER_ID = "user-other"


def members(*user_ids: str) -> list[MemberDetails]:
    return [MemberDetails(user_id=user_id) for user_id in user_ids]


@pytest.fixture
def admin() -> Profile:
    return Profile(id=ADMIN_ID, full_name="Ada Admin", role="admin")


@pytest.fixture
def employee() -> Profile:
    return Profile(id=EMPLOYEE_ID, full_name="Erin Employee", role="employee")


@pytest.fixture
def beta(backend) -> Project:
    backend.rows(PROJECTS).append({"id": 5, "name": "Beta", "color": "#00f"})
    return Project(id=5, name="Beta", color="#00f")


@pytest.fixture
def coordinator(backend, bus, notifier, suppressor) -> ProjectSaveCoordinator:
    backend.rows(PROFILES).append(profile_row(SECOND_ADMIN_ID, "Second Admin", "admin"))
    return ProjectSaveCoordinator(backend, bus, notifier, suppressor)


def project_invalidations(recorder) -> list:
    return [e for e in recorder.of_kind("batch_invalidate") if e.table == PROJECTS]


class TestMemberDiff:
    def test_diff_by_user_id(self):
        request = ProjectSaveRequest(
            name="Beta",
            original_members=members(ADMIN_ID, EMPLOYEE_ID),
            updated_members=members(EMPLOYEE_ID, OTHER_ID),
        )
        assert request.member_diff() == ([OTHER_ID], [ADMIN_ID])

    def test_unchanged_roster(self):
        request = ProjectSaveRequest(
            name="Beta", original_members=members("a", "b"), updated_members=members("b", "a")
        )
        assert request.member_diff() == ([], [])


class TestCreateProject:
    @pytest.mark.asyncio
    async def test_admin_creates_alpha(self, coordinator, backend, notifier, recorder, admin):
        """Creating "Alpha" with [A, B]: project row, creator membership, admin notices."""
        request = ProjectSaveRequest(name="Alpha", color="#f00", updated_members=members(ADMIN_ID, EMPLOYEE_ID))

        outcome = await coordinator.save(request, admin)

        assert outcome.ok
        assert outcome.created
        assert outcome.warnings == []
        assert outcome.project.name == "Alpha"

        project_inserts = backend.calls_for("insert", PROJECTS)
        assert len(project_inserts) == 1
        assert project_inserts[0].args["rows"][0]["created_by"] == ADMIN_ID

        member_inserts = backend.calls_for("insert", PROJECT_MEMBERS)
        assert len(member_inserts) == 1
        assert member_inserts[0].args["rows"] == [{"project_id": outcome.project.id, "user_id": ADMIN_ID}]

        notices = backend.calls_for("insert", NOTIFICATIONS)
        assert len(notices) == 1
        rows = notices[0].args["rows"]
        assert [r["user_id"] for r in rows] == [SECOND_ADMIN_ID]
        assert rows[0]["type"] == "new_project_created"
        assert rows[0]["data"]["project_name"] == "Alpha"

        assert len(project_invalidations(recorder)) == 1
        assert notifier.messages == [("Project created successfully", "success")]

    @pytest.mark.asyncio
    async def test_creator_membership_failure_is_a_warning(
        self, coordinator, backend, notifier, recorder, admin
    ):
        backend.fail_on("insert", PROJECT_MEMBERS, "duplicate key")

        outcome = await coordinator.save(ProjectSaveRequest(name="Alpha"), admin)

        assert outcome.ok
        assert [w.step for w in outcome.warnings] == ["add_creator"]
        assert (CREATOR_MEMBERSHIP_MESSAGE, "error") in notifier.messages
        assert ("Project created successfully", "success") in notifier.messages
        assert len(project_invalidations(recorder)) == 1

    @pytest.mark.asyncio
    async def test_admin_lookup_failure_is_only_logged(
        self, coordinator, backend, notifier, recorder, admin, caplog
    ):
        backend.fail_on("select", PROFILES, "timeout")

        outcome = await coordinator.save(ProjectSaveRequest(name="Alpha"), admin)

        assert outcome.ok
        assert outcome.warnings == []
        assert notifier.with_severity("error") == []
        assert backend.calls_for("insert", NOTIFICATIONS) == []
        assert "Could not fetch admins" in caplog.text
        assert len(project_invalidations(recorder)) == 1

    @pytest.mark.asyncio
    async def test_notification_insert_failure_is_only_logged(
        self, coordinator, backend, notifier, admin
    ):
        backend.fail_on("insert", NOTIFICATIONS)
        outcome = await coordinator.save(ProjectSaveRequest(name="Alpha"), admin)
        assert outcome.ok
        assert notifier.with_severity("error") == []

    @pytest.mark.asyncio
    async def test_project_insert_failure_aborts(self, coordinator, backend, notifier, recorder, admin):
        backend.fail_on("insert", PROJECTS, "name already taken")

        outcome = await coordinator.save(ProjectSaveRequest(name="Alpha"), admin)

        assert not outcome.ok
        assert isinstance(outcome.error, WriteError)
        assert notifier.messages == [("name already taken", "error")]
        assert backend.calls_for("insert", PROJECT_MEMBERS) == []
        assert recorder.events == []

    @pytest.mark.asyncio
    async def test_employee_cannot_create(self, coordinator, backend, notifier, recorder, employee):
        closed = []

        outcome = await coordinator.save(ProjectSaveRequest(name="Alpha"), employee, on_close=lambda: closed.append(1))

        assert isinstance(outcome.error, PermissionDeniedError)
        assert notifier.messages == [(PERMISSION_MESSAGE, "error")]
        assert backend.calls == []
        assert recorder.events == []
        assert closed == []


class TestUpdateProject:
    @pytest.mark.asyncio
    async def test_beta_roster_change(self, coordinator, backend, recorder, notifier, admin, beta):
        """Editing "Beta" from [A, B] to [B, C]: one removal of A, one addition of C."""
        request = ProjectSaveRequest(
            name="Beta",
            color="#00f",
            original_members=members(ADMIN_ID, EMPLOYEE_ID),
            updated_members=members(EMPLOYEE_ID, OTHER_ID),
            target_project=beta,
        )

        outcome = await coordinator.save(request, admin)

        assert outcome.ok
        assert not outcome.created
        removals = backend.calls_for("delete", PROJECT_MEMBERS)
        assert len(removals) == 1
        assert removals[0].args["filters"] == {"project_id": 5, "user_id": [ADMIN_ID]}
        additions = backend.calls_for("insert", PROJECT_MEMBERS)
        assert len(additions) == 1
        assert additions[0].args["rows"] == [{"project_id": 5, "user_id": OTHER_ID}]
        assert backend.calls_for("insert", NOTIFICATIONS) == []
        assert len(project_invalidations(recorder)) == 1
        assert notifier.messages == [("Project updated successfully", "success")]

    @pytest.mark.asyncio
    async def test_admin_update_marks_project_pending(self, coordinator, suppressor, admin, beta):
        await coordinator.save(ProjectSaveRequest(name="Beta 2", target_project=beta), admin)
        assert suppressor.is_pending(PROJECTS, 5)

    @pytest.mark.asyncio
    async def test_unchanged_roster_issues_no_membership_calls(
        self, coordinator, backend, recorder, admin, beta
    ):
        request = ProjectSaveRequest(
            name="Beta",
            original_members=members(ADMIN_ID, EMPLOYEE_ID),
            updated_members=members(EMPLOYEE_ID, ADMIN_ID),
            target_project=beta,
        )

        outcome = await coordinator.save(request, admin)

        assert outcome.ok
        assert backend.calls_for("delete", PROJECT_MEMBERS) == []
        assert backend.calls_for("insert", PROJECT_MEMBERS) == []
        assert len(project_invalidations(recorder)) == 1

    @pytest.mark.asyncio
    async def test_removal_failure_does_not_stop_the_save(
        self, coordinator, backend, recorder, notifier, admin, beta
    ):
        backend.fail_on("delete", PROJECT_MEMBERS, "network error")
        request = ProjectSaveRequest(
            name="Beta",
            original_members=members(ADMIN_ID, EMPLOYEE_ID),
            updated_members=members(EMPLOYEE_ID, OTHER_ID),
            target_project=beta,
        )

        outcome = await coordinator.save(request, admin)

        assert outcome.ok
        assert [(w.step, w.message) for w in outcome.warnings] == [
            ("remove_members", "Error removing members: network error")
        ]
        assert len(backend.calls_for("insert", PROJECT_MEMBERS)) == 1
        assert notifier.messages == [
            ("Error removing members: network error", "error"),
            ("Project updated successfully", "success"),
        ]
        assert len(project_invalidations(recorder)) == 1

    @pytest.mark.asyncio
    async def test_addition_failure_is_not_retried(self, coordinator, backend, notifier, admin, beta):
        backend.fail_on("insert", PROJECT_MEMBERS, "rls violation")
        request = ProjectSaveRequest(
            name="Beta", updated_members=members(OTHER_ID), target_project=beta
        )

        outcome = await coordinator.save(request, admin)

        assert [w.step for w in outcome.warnings] == ["add_members"]
        assert len(backend.calls_for("insert", PROJECT_MEMBERS)) == 1
        assert ("Error adding members: rls violation", "error") in notifier.messages

    @pytest.mark.asyncio
    async def test_project_update_failure_discards_marker(
        self, coordinator, backend, suppressor, notifier, recorder, admin, beta
    ):
        backend.fail_on("update", PROJECTS, "permission denied")

        outcome = await coordinator.save(ProjectSaveRequest(name="Beta", target_project=beta), admin)

        assert isinstance(outcome.error, WriteError)
        assert not suppressor.is_pending(PROJECTS, 5)
        assert notifier.messages == [("permission denied", "error")]
        assert recorder.events == []

    @pytest.mark.asyncio
    async def test_employee_edits_roster_without_touching_project_row(
        self, coordinator, backend, employee, beta
    ):
        request = ProjectSaveRequest(
            name="ignored",
            original_members=members(EMPLOYEE_ID),
            updated_members=members(EMPLOYEE_ID, OTHER_ID),
            target_project=beta,
        )

        outcome = await coordinator.save(request, employee)

        assert outcome.ok
        assert outcome.project == beta
        assert backend.calls_for("update", PROJECTS) == []
        assert len(backend.calls_for("insert", PROJECT_MEMBERS)) == 1

    @pytest.mark.asyncio
    async def test_surface_closes_before_invalidate(self, coordinator, bus, admin, beta):
        order = []
        with bus.subscribe(lambda e: order.append(e.kind)):
            await coordinator.save(
                ProjectSaveRequest(name="Beta", target_project=beta),
                admin,
                on_close=lambda: order.append("closed"),
            )
        assert order == ["closed", "batch_invalidate"]
