"""Concurrent approvers acting on the same instance."""

import threading
from uuid import uuid4

import pytest

from formflow.core.errors import ValidationError
from formflow.core.workflow.states import ApprovalStatus, InstanceStatus, StagePolicy, SubmissionStatus
from tests.factories import approval_for

pytestmark = [pytest.mark.db, pytest.mark.integration]


def run_concurrently(calls):
    """Run each zero-argument callable in its own thread, released together."""
    barrier = threading.Barrier(len(calls))
    results, errors = [], []
    guard = threading.Lock()

    def worker(call):
        barrier.wait()
        try:
            result = call()
        except Exception as e:
            with guard:
                errors.append(e)
        else:
            with guard:
                results.append(result)

    threads = [threading.Thread(target=worker, args=(call,)) for call in calls]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)
    return results, errors


def test_all_must_approve_advances_once(workflow_engine, workflow_builder, notifier):
    workflow = workflow_builder((StagePolicy.ALL_MUST_APPROVE, 5), (StagePolicy.PARALLEL, 1))
    first, second = workflow.stages
    instance = workflow_engine.lifecycle.start_workflow(workflow.id, uuid4())
    approve = workflow_engine.processor.approve

    results, errors = run_concurrently([
        (lambda a=approver: approve(approval_for(instance, a).id, a))
        for approver in first.approvers
    ])

    assert errors == []
    assert sum(r.stage_completed for r in results) == 1
    assert len(workflow_engine.lifecycle.locks) == 0

    final = workflow_engine.lifecycle.get_instance(instance.id)
    assert final.current_stage_id == second.id
    assert all(a.status == ApprovalStatus.APPROVED for a in final.approvals_for_stage(first.id))
    assert len(final.approvals_for_stage(second.id)) == 1
    assert notifier.approvers.count((instance.id, second.id)) == 1


def test_parallel_completes_once(workflow_engine, workflow_builder, audit, notifier):
    workflow = workflow_builder((StagePolicy.PARALLEL, 4))
    instance = workflow_engine.lifecycle.start_workflow(workflow.id, uuid4())
    approve = workflow_engine.processor.approve

    results, errors = run_concurrently([
        (lambda a=approver: approve(approval_for(instance, a).id, a))
        for approver in workflow.stages[0].approvers
    ])

    assert errors == []
    assert [r.submission_status for r in results].count(SubmissionStatus.APPROVED) == 1
    assert workflow_engine.lifecycle.get_instance(instance.id).status == InstanceStatus.COMPLETED
    assert audit.actions.count("SUBMISSION_APPROVED") == 1
    assert len(notifier.submitters) == 1


def test_same_approval_twice(workflow_engine, workflow_builder):
    workflow = workflow_builder((StagePolicy.ALL_MUST_APPROVE, 2))
    approver = workflow.stages[0].approvers[0]
    instance = workflow_engine.lifecycle.start_workflow(workflow.id, uuid4())
    approval_id = approval_for(instance, approver).id

    results, errors = run_concurrently([
        lambda: workflow_engine.processor.approve(approval_id, approver),
        lambda: workflow_engine.processor.approve(approval_id, approver),
    ])

    assert len(results) == 1
    assert len(errors) == 1
    assert isinstance(errors[0], ValidationError)


def test_leftover_parallel_sibling_does_not_advance_again(workflow_engine, workflow_builder, notifier):
    workflow = workflow_builder((StagePolicy.PARALLEL, 2), (StagePolicy.ALL_MUST_APPROVE, 1))
    first, second = workflow.stages
    x, y = first.approvers
    instance = workflow_engine.lifecycle.start_workflow(workflow.id, uuid4())
    leftover = approval_for(instance, y)

    workflow_engine.processor.approve(approval_for(instance, x).id, x)
    result = workflow_engine.processor.approve(leftover.id, y)

    assert not result.stage_completed
    assert result.next_stage is None
    assert result.submission_status is None
    final = workflow_engine.lifecycle.get_instance(instance.id)
    assert final.current_stage_id == second.id
    assert len(final.approvals_for_stage(second.id)) == 1
    assert notifier.approvers.count((instance.id, second.id)) == 1
