"""Stage completion evaluation.

Pure decision functions: no database access, no side effects.
"""

from typing import Iterable

from .states import ApprovalStatus, StagePolicy


def count_approved(statuses: Iterable[ApprovalStatus]) -> int:
    return sum(1 for s in statuses if s == ApprovalStatus.APPROVED)


def is_stage_complete(
    policy: StagePolicy,
    approver_count: int,
    statuses: Iterable[ApprovalStatus],
) -> bool:
    """
    Decide whether a stage's approvals satisfy its policy.

    SEQUENTIAL and ALL_MUST_APPROVE need an APPROVED entry for every
    configured approver; the engine does not enforce approval order, so the
    two policies share one rule. PARALLEL is satisfied by the first
    APPROVED entry. DECLINED and REJECTED never count toward completion.

    Args:
        policy: The stage's completion policy
        approver_count: Number of approvers configured on the stage
        statuses: Current statuses of the stage's approvals

    Returns:
        True if the stage is satisfied

    Raises:
        ValueError: If the policy is not a known StagePolicy
    """
    statuses = list(statuses)

    if policy in (StagePolicy.SEQUENTIAL, StagePolicy.ALL_MUST_APPROVE):
        return count_approved(statuses) == approver_count
    if policy == StagePolicy.PARALLEL:
        return any(s == ApprovalStatus.APPROVED for s in statuses)

    raise ValueError(f"Unknown stage policy: {policy!r}")
