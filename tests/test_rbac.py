"""
Access policy: pure decisions over (actor, action, file snapshot, timer).
"""

import pytest

from printflow.models.auth import Role
from printflow.models.file import FileStatus, Stage
from printflow.services.rbac import (
    Actor,
    FileSnapshot,
    WorkflowAction,
    available_actions,
    can_perform,
    department_for_role,
    has_permission,
    is_valid_transition,
)

REPRO, QUALITY, PRE = "dept-repro", "dept-quality", "dept-pre"

admin = Actor("u-admin", Role.ADMIN, "dept-admin")
pre = Actor("u-pre", Role.PRE_REPRO, PRE)
designer = Actor("u-des", Role.DESIGNER, REPRO)
other_designer = Actor("u-des2", Role.DESIGNER, REPRO)
quality = Actor("u-qual", Role.QUALITY, QUALITY)
collation = Actor("u-col", Role.COLLATION, "dept-col")


def snap(status, owner=None, dept=REPRO, pending=False, requires_approval=True, stage=None):
    return FileSnapshot(
        status=status,
        assigned_designer_id=owner,
        current_department_id=dept,
        pending_takeover=pending,
        requires_approval=requires_approval,
        stage=stage,
    )


class TestAssign:
    def test_only_admin_assigns(self):
        f = snap(FileStatus.AWAITING_ASSIGNMENT, dept=PRE, stage=Stage.PRE_REPRO)
        assert can_perform(admin, WorkflowAction.ASSIGN, f)
        assert not can_perform(pre, WorkflowAction.ASSIGN, f)
        assert not can_perform(designer, WorkflowAction.ASSIGN, f)

    def test_assign_requires_awaiting_assignment(self):
        assert not can_perform(admin, WorkflowAction.ASSIGN, snap(FileStatus.IN_REPRO))


class TestTakeover:
    def test_pending_in_own_department(self):
        f = snap(FileStatus.IN_QUALITY, dept=QUALITY, pending=True)
        assert can_perform(quality, WorkflowAction.TAKEOVER, f)
        assert not can_perform(designer, WorkflowAction.TAKEOVER, f)

    def test_assigned_designer_outside_pending(self):
        f = snap(FileStatus.REVISION_REQUIRED, owner=designer.id, dept=QUALITY)
        assert can_perform(designer, WorkflowAction.TAKEOVER, f)
        assert not can_perform(other_designer, WorkflowAction.TAKEOVER, f)

    def test_not_pending_and_not_owned(self):
        assert not can_perform(designer, WorkflowAction.TAKEOVER, snap(FileStatus.IN_REPRO, owner=designer.id))


class TestRepro:
    def test_request_approval_needs_owner_and_timer(self):
        f = snap(FileStatus.IN_REPRO, owner=designer.id)
        assert can_perform(designer, WorkflowAction.REQUEST_APPROVAL, f, has_active_timer=True)
        assert not can_perform(designer, WorkflowAction.REQUEST_APPROVAL, f, has_active_timer=False)
        assert not can_perform(other_designer, WorkflowAction.REQUEST_APPROVAL, f, has_active_timer=True)

    def test_approval_flag_selects_route(self):
        needs = snap(FileStatus.IN_REPRO, owner=designer.id, requires_approval=True)
        skips = snap(FileStatus.IN_REPRO, owner=designer.id, requires_approval=False)
        assert not can_perform(designer, WorkflowAction.DIRECT_TO_QUALITY, needs, True)
        assert can_perform(designer, WorkflowAction.DIRECT_TO_QUALITY, skips, True)
        assert not can_perform(designer, WorkflowAction.REQUEST_APPROVAL, skips, True)


class TestDecisions:
    @pytest.mark.parametrize("action", [
        WorkflowAction.CUSTOMER_OK, WorkflowAction.CUSTOMER_NOK, WorkflowAction.RESTART_MG,
    ])
    def test_customer_decisions(self, action):
        f = snap(FileStatus.CUSTOMER_APPROVAL, dept="dept-customer")
        assert can_perform(pre, action, f)
        assert can_perform(admin, action, f)
        assert not can_perform(quality, action, f)

    def test_send_to_customer(self):
        f = snap(FileStatus.APPROVAL_PREP, dept=PRE, pending=True)
        assert can_perform(pre, WorkflowAction.SEND_TO_CUSTOMER, f)
        assert not can_perform(designer, WorkflowAction.SEND_TO_CUSTOMER, f)

    @pytest.mark.parametrize("action", [WorkflowAction.QUALITY_OK, WorkflowAction.QUALITY_NOK])
    def test_quality_requires_active_timer(self, action):
        f = snap(FileStatus.IN_QUALITY, dept=QUALITY)
        assert can_perform(quality, action, f, has_active_timer=True)
        assert not can_perform(quality, action, f, has_active_timer=False)
        assert not can_perform(collation, action, f, has_active_timer=True)

    def test_send_to_production(self):
        f = snap(FileStatus.IN_KOLAJ, dept="dept-col")
        assert can_perform(collation, WorkflowAction.SEND_TO_PRODUCTION, f, True)
        assert not can_perform(collation, WorkflowAction.SEND_TO_PRODUCTION, f, False)
        assert not can_perform(quality, WorkflowAction.SEND_TO_PRODUCTION, f, True)


class TestPreRepro:
    def test_claim_only_when_unclaimed(self):
        open_file = snap(FileStatus.AWAITING_ASSIGNMENT, dept=PRE, stage=Stage.PRE_REPRO)
        claimed = snap(FileStatus.AWAITING_ASSIGNMENT, owner=pre.id, dept=PRE, stage=Stage.PRE_REPRO)
        assert can_perform(pre, WorkflowAction.CLAIM, open_file)
        assert not can_perform(designer, WorkflowAction.CLAIM, open_file)
        assert not can_perform(pre, WorkflowAction.CLAIM, claimed)

    @pytest.mark.parametrize("action", [WorkflowAction.COMPLETE, WorkflowAction.RETURN_TO_QUEUE])
    def test_claimant_actions(self, action):
        claimed = snap(FileStatus.AWAITING_ASSIGNMENT, owner=pre.id, dept=PRE, stage=Stage.PRE_REPRO)
        assert can_perform(pre, action, claimed)
        assert not can_perform(Actor("u-pre2", Role.PRE_REPRO, PRE), action, claimed)


class TestGeneral:
    def test_unknown_action_is_denied(self):
        assert not can_perform(admin, "DELETE_EVERYTHING", snap(FileStatus.IN_REPRO))

    def test_string_action_is_accepted(self):
        f = snap(FileStatus.AWAITING_ASSIGNMENT, dept=PRE, stage=Stage.PRE_REPRO)
        assert can_perform(admin, "ASSIGN", f)

    def test_notes_allowed_until_closed(self):
        assert can_perform(designer, WorkflowAction.ADD_NOTE, snap(FileStatus.IN_QUALITY))
        assert not can_perform(admin, WorkflowAction.ADD_NOTE, snap(FileStatus.SENT_TO_PRODUCTION))

    def test_nothing_is_available_on_closed_file(self):
        f = snap(FileStatus.SENT_TO_PRODUCTION, owner=designer.id, stage=Stage.DONE)
        for actor in (admin, pre, designer, quality, collation):
            assert available_actions(actor, f, has_active_timer=True) == []

    def test_available_actions_for_designer_at_work(self):
        f = snap(FileStatus.IN_REPRO, owner=designer.id)
        assert available_actions(designer, f, has_active_timer=True) == [
            WorkflowAction.REQUEST_APPROVAL, WorkflowAction.ADD_NOTE,
        ]

    def test_permissions_and_helpers(self):
        assert has_permission(Role.ADMIN, "report:view")
        assert not has_permission(Role.DESIGNER, "file:assign")
        assert not has_permission("GHOST", "file:create")
        assert department_for_role(Role.QUALITY).value == "QUALITY"
        assert is_valid_transition("IN_KOLAJ", "SENT_TO_PRODUCTION")
        assert not is_valid_transition("SENT_TO_PRODUCTION", "IN_KOLAJ")
