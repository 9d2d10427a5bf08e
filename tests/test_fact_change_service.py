"""
tests/test_fact_change_service.py

Submit / approve / reject lifecycle of single change requests.

Coverage
--------
- Pending submission, identity normalization, owner notification
- One pending change per fact (service check and unique index)
- Auto-approve when owner == editor
- Partial-field apply and status recompute on approval
- Reject reason validation and trimming
- State guards, review policy, rollback on mutation failure
- Notifier failures never undo a committed approval
- Reviewer inbox counts and listings
- Unknown proposed status codes are refused
- Notifications wait for a caller-owned transaction to commit
"""

from __future__ import annotations

import uuid
from decimal import Decimal

import pytest

from app.services.access import OwnerOrAdminPolicy
from app.services.fact_change_service import FactChangeService
from app.services.notifications import NotificationDispatcher, NotifyResult, drain_outbox
from db.models import ApprovalStatus, KpiFact, KpiFactChange
from db.repositories.fact_change_repository import FactChangeRepository
from db.repositories.types import ProposedValues
from kpi.errors import (
    ConflictError,
    InvalidConfigurationError,
    InvalidStateError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from kpi.status import StatusCode

pytestmark = pytest.mark.anyio


class _BrokenNotifier:
    async def notify(self, recipient: str, subject: str, body: str) -> NotifyResult:
        raise RuntimeError("mail relay unreachable")


@pytest.fixture
def make_service(session, dispatcher, clock):
    def _make(**kwargs) -> FactChangeService:
        kwargs.setdefault("dispatcher", dispatcher)
        return FactChangeService(session, clock=clock, **kwargs)

    return _make


def actual(value: str) -> ProposedValues:
    return ProposedValues(actual=Decimal(value))


# ---------------------------------------------------------------------------
# Submit
# ---------------------------------------------------------------------------


class TestSubmit:
    async def test_creates_pending_change_and_notifies_owner(
        self, seed, make_service, notifier, fetch
    ) -> None:
        plan = await seed(values={1: (None, 10, None)})
        fact_id = plan.fact_ids[1]

        change = await make_service().submit(
            fact_id,
            ProposedValues(actual=Decimal("12"), status_code="   "),
            "CORP\\Bob",
        )

        assert change.approval_status == ApprovalStatus.PENDING
        assert change.submitted_by == "bob"
        assert change.proposed_status_code is None
        assert change.proposed_actual_value == Decimal("12")

        stored = await fetch(KpiFactChange, change.id)
        assert stored.approval_status == ApprovalStatus.PENDING
        assert (await fetch(KpiFact, fact_id)).actual_value is None

        assert len(notifier.sent) == 1
        assert notifier.sent[0].recipient == "alice"
        assert notifier.sent[0].subject == "KPI change pending approval"
        assert "KPI REV — REV name" in notifier.sent[0].body
        assert "by bob" in notifier.sent[0].body

    async def test_second_pending_change_conflicts(self, seed, make_service, fetch_changes) -> None:
        plan = await seed()
        service = make_service()
        await service.submit(plan.fact_ids[1], actual("1"), "bob")

        with pytest.raises(ConflictError):
            await service.submit(plan.fact_ids[1], actual("2"), "bob")

        assert len(await fetch_changes(fact_id=plan.fact_ids[1])) == 1

    async def test_unique_index_backs_up_the_pending_check(
        self, seed, make_service, fetch_changes, monkeypatch
    ) -> None:
        plan = await seed()
        service = make_service()
        await service.submit(plan.fact_ids[1], actual("1"), "bob")

        async def never_pending(self, fact_id) -> bool:
            return False

        monkeypatch.setattr(FactChangeRepository, "has_pending", never_pending)

        with pytest.raises(ConflictError):
            await service.submit(plan.fact_ids[1], actual("2"), "bob")

        assert len(await fetch_changes(fact_id=plan.fact_ids[1])) == 1

    async def test_inactive_fact_is_not_found(self, seed, make_service) -> None:
        plan = await seed(inactive=(1,))

        with pytest.raises(NotFoundError):
            await make_service().submit(plan.fact_ids[1], actual("1"), "bob")

    async def test_unknown_fact_is_not_found(self, make_service) -> None:
        with pytest.raises(NotFoundError):
            await make_service().submit(uuid.uuid4(), actual("1"), "bob")

    async def test_blank_submitter_is_rejected(self, seed, make_service) -> None:
        plan = await seed()

        with pytest.raises(ValidationError):
            await make_service().submit(plan.fact_ids[1], actual("1"), "  ")

    async def test_unknown_status_code_is_rejected(
        self, seed, make_service, notifier, fetch_changes
    ) -> None:
        plan = await seed()

        with pytest.raises(ValidationError, match="banana"):
            await make_service().submit(
                plan.fact_ids[1],
                ProposedValues(actual=Decimal("1"), status_code="banana"),
                "bob",
            )

        assert await fetch_changes(fact_id=plan.fact_ids[1]) == []
        assert notifier.sent == []

    async def test_status_code_is_stored_lower_case(self, seed, make_service, fetch) -> None:
        plan = await seed()

        change = await make_service().submit(
            plan.fact_ids[1], ProposedValues(status_code=" Needs_Attention "), "bob"
        )

        stored = await fetch(KpiFactChange, change.id)
        assert stored.proposed_status_code == StatusCode.NEEDS_ATTENTION

    async def test_plan_without_owner_submits_silently(self, seed, make_service, notifier) -> None:
        plan = await seed(owner_id=None)

        change = await make_service().submit(plan.fact_ids[1], actual("1"), "bob")

        assert change.approval_status == ApprovalStatus.PENDING
        assert notifier.sent == []

    async def test_owner_as_editor_auto_approves(
        self, seed, make_service, notifier, fetch
    ) -> None:
        plan = await seed(owner_id="carol", editor_id=" carol ", values={1: (None, 10, None)})
        fact_id = plan.fact_ids[1]

        change = await make_service().submit(fact_id, actual("11"), "carol")

        stored = await fetch(KpiFactChange, change.id)
        assert stored.approval_status == ApprovalStatus.APPROVED
        assert stored.reviewed_by == "carol"
        assert stored.reviewed_at is not None

        fact = await fetch(KpiFact, fact_id)
        assert fact.actual_value == Decimal("11")
        assert fact.status_code == StatusCode.OK
        assert notifier.sent == []


# ---------------------------------------------------------------------------
# Approve
# ---------------------------------------------------------------------------


class TestApprove:
    async def test_applies_only_supplied_fields(
        self, seed, make_service, notifier, fetch
    ) -> None:
        plan = await seed(values={1: (5, 10, 12)})
        fact_id = plan.fact_ids[1]
        service = make_service()
        change = await service.submit(fact_id, actual("11"), "bob")

        approved = await service.approve(change.id, "CORP\\Alice")

        assert approved.approval_status == ApprovalStatus.APPROVED
        assert approved.reviewed_by == "alice"

        fact = await fetch(KpiFact, fact_id)
        assert fact.actual_value == Decimal("11")
        assert fact.target_value == Decimal("10")
        assert fact.forecast_value == Decimal("12")
        assert fact.status_code == StatusCode.OK
        assert fact.last_changed_by == "alice"

        assert notifier.subjects == ["KPI change pending approval", "KPI change approved"]
        assert notifier.sent[1].recipient == "bob"

    async def test_approval_recomputes_the_previous_period(
        self, seed, make_service, fetch
    ) -> None:
        plan = await seed(values={1: (5, 10, None), 2: (None, 8, None)})
        service = make_service()
        change = await service.submit(plan.fact_ids[2], ProposedValues(forecast=Decimal("9")), "bob")

        await service.approve(change.id, "alice")

        january = await fetch(KpiFact, plan.fact_ids[1])
        assert january.status_code == StatusCode.CATCHING_UP

    async def test_suppressed_notification(self, seed, make_service, notifier) -> None:
        plan = await seed(owner_id=None)
        service = make_service()
        change = await service.submit(plan.fact_ids[1], actual("1"), "bob")

        await service.approve(change.id, "alice", suppress_notification=True)

        assert notifier.sent == []

    async def test_already_approved_is_invalid_state(self, seed, make_service) -> None:
        plan = await seed()
        service = make_service()
        change = await service.submit(plan.fact_ids[1], actual("1"), "bob")
        await service.approve(change.id, "alice")

        with pytest.raises(InvalidStateError):
            await service.approve(change.id, "alice")

    async def test_unknown_change(self, make_service) -> None:
        with pytest.raises(NotFoundError):
            await make_service().approve(uuid.uuid4(), "alice")

    async def test_review_policy_is_enforced(self, seed, make_service, fetch) -> None:
        plan = await seed()
        service = make_service(review_policy=OwnerOrAdminPolicy(["root"]))
        change_id = (await service.submit(plan.fact_ids[1], actual("1"), "bob")).id

        with pytest.raises(PermissionDeniedError):
            await service.approve(change_id, "mallory")
        assert (await fetch(KpiFactChange, change_id)).approval_status == ApprovalStatus.PENDING

        approved = await service.approve(change_id, "root")
        assert approved.reviewed_by == "root"

    async def test_failure_during_recompute_rolls_back(self, seed, make_service, fetch) -> None:
        plan = await seed(target_direction=None, values={1: (5, 10, None)})
        fact_id = plan.fact_ids[1]
        service = make_service()
        change_id = (await service.submit(fact_id, actual("11"), "bob")).id

        with pytest.raises(InvalidConfigurationError):
            await service.approve(change_id, "alice")

        assert (await fetch(KpiFactChange, change_id)).approval_status == ApprovalStatus.PENDING
        assert (await fetch(KpiFact, fact_id)).actual_value == Decimal("5")

    async def test_notifier_failure_keeps_the_approval(self, seed, make_service, fetch) -> None:
        plan = await seed()
        service = make_service(dispatcher=NotificationDispatcher(_BrokenNotifier()))
        change = await service.submit(plan.fact_ids[1], actual("1"), "bob")

        await service.approve(change.id, "alice")

        assert (await fetch(KpiFactChange, change.id)).approval_status == ApprovalStatus.APPROVED


# ---------------------------------------------------------------------------
# Reject
# ---------------------------------------------------------------------------


class TestReject:
    @pytest.mark.parametrize("reason", ["", "   ", None])
    async def test_reason_is_required(self, seed, make_service, fetch, reason) -> None:
        plan = await seed()
        service = make_service()
        change_id = (await service.submit(plan.fact_ids[1], actual("1"), "bob")).id

        with pytest.raises(ValidationError):
            await service.reject(change_id, "alice", reason)

        assert (await fetch(KpiFactChange, change_id)).approval_status == ApprovalStatus.PENDING

    async def test_rejection_leaves_the_fact_alone(
        self, seed, make_service, notifier, fetch
    ) -> None:
        plan = await seed(values={1: (5, 10, None)}, statuses={1: "needs_attention"})
        fact_id = plan.fact_ids[1]
        service = make_service()
        change = await service.submit(fact_id, actual("11"), "bob")

        rejected = await service.reject(change.id, "alice", "  figures not signed off  ")

        assert rejected.approval_status == ApprovalStatus.REJECTED
        assert rejected.reject_reason == "figures not signed off"
        assert rejected.reviewed_by == "alice"

        fact = await fetch(KpiFact, fact_id)
        assert fact.actual_value == Decimal("5")
        assert fact.status_code == "needs_attention"

        assert notifier.sent[-1].subject == "KPI change rejected"
        assert notifier.sent[-1].recipient == "bob"
        assert "figures not signed off" in notifier.sent[-1].body

    async def test_reject_after_approve_is_invalid_state(self, seed, make_service) -> None:
        plan = await seed()
        service = make_service()
        change = await service.submit(plan.fact_ids[1], actual("1"), "bob")
        await service.approve(change.id, "alice")

        with pytest.raises(InvalidStateError):
            await service.reject(change.id, "alice", "too late")

    async def test_new_change_allowed_after_rejection(self, seed, make_service) -> None:
        plan = await seed()
        service = make_service()
        change = await service.submit(plan.fact_ids[1], actual("1"), "bob")
        await service.reject(change.id, "alice", "no")

        again = await service.submit(plan.fact_ids[1], actual("2"), "bob")

        assert again.approval_status == ApprovalStatus.PENDING


# ---------------------------------------------------------------------------
# Reviewer inbox
# ---------------------------------------------------------------------------


class TestInbox:
    async def test_counts_and_lists_by_owner(self, seed, make_service) -> None:
        revenue = await seed(code="REV", owner_id="alice", year=2025)
        cost = await seed(code="COST", owner_id="dave", year=2026)
        service = make_service()
        await service.submit(revenue.fact_ids[1], actual("1"), "bob")
        await service.submit(cost.fact_ids[1], actual("1"), "bob")

        assert await service.has_pending(revenue.fact_ids[1])
        assert not await service.has_pending(revenue.fact_ids[2])
        assert await service.count_pending("alice") == 1
        assert await service.count_pending("CORP\\Dave") == 1
        assert await service.count_pending("bob") == 0
        assert await service.count_pending("root", all_plans=True) == 2

        listed = await service.list_changes("alice")
        assert [c.kpi_fact_id for c in listed] == [revenue.fact_ids[1]]
        assert await service.list_changes("alice", status=ApprovalStatus.APPROVED) == []


# ---------------------------------------------------------------------------
# Caller-owned transaction
# ---------------------------------------------------------------------------


class TestCallerOwnedTransaction:
    async def test_notifications_wait_for_the_callers_commit(
        self, seed, session, make_service, dispatcher, notifier, fetch
    ) -> None:
        plan = await seed()
        service = make_service()

        async with session.begin():
            change = await service.submit(plan.fact_ids[1], actual("1"), "bob")
            assert notifier.sent == []
        change_id = change.id

        assert notifier.sent == []
        assert (await fetch(KpiFactChange, change_id)).approval_status == ApprovalStatus.PENDING

        parked = drain_outbox(session)
        assert [item.subject for item in parked] == ["KPI change pending approval"]
        assert drain_outbox(session) == []

        await dispatcher.dispatch(parked)
        assert notifier.subjects == ["KPI change pending approval"]

    async def test_own_transaction_sends_immediately(
        self, seed, session, make_service, notifier
    ) -> None:
        plan = await seed()

        await make_service().submit(plan.fact_ids[1], actual("1"), "bob")

        assert notifier.subjects == ["KPI change pending approval"]
        assert drain_outbox(session) == []
