"""Issue type and workflow status classification.

This module is the single place where free-text issue types and status names
are turned into categories. Everything here is total: unknown or empty input
falls through to an "unknown"/"uncategorized" variant instead of raising.

Two completion rules live side by side on purpose:

- ``WorkflowBucketPolicy``: keyword buckets (used by kanban flow metrics).
- ``StrictCompletionPolicy``: exact ``Done``/``Closed``/``Resolved`` match
  (used by sprint metrics).
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum
from typing import TypeVar

from .config import (
    DEFECT_TYPES,
    DONE_KEYWORDS,
    IN_PROGRESS_KEYWORDS,
    QUALITY_EXCLUDED_TYPES,
    STRICT_COMPLETED_STATUSES,
    SUB_TASK_TYPES,
    TODO_KEYWORDS,
)
from .models import IssueModel

logger = logging.getLogger(__name__)

IssueT = TypeVar("IssueT", bound=IssueModel)


class WorkflowBucket(str, Enum):
    TODO = "todo"
    IN_PROGRESS = "inProgress"
    DONE = "done"
    UNCATEGORIZED = "uncategorized"


class IssueKind(str, Enum):
    STORY = "Story"
    TASK = "Task"
    BUG = "Bug"
    DEFECT = "Defect"
    SUB_TASK = "Sub-task"
    SPIKE = "Spike"
    RELEASE = "Release"
    EPIC = "Epic"
    OTHER = "Other"
    UNKNOWN = "Unknown"


_EXACT_KINDS: dict[str, IssueKind] = {
    kind.value: kind
    for kind in IssueKind
    if kind not in {IssueKind.SUB_TASK, IssueKind.OTHER, IssueKind.UNKNOWN}
}


def is_sub_task(issue_type: str | None) -> bool:
    """Return True for any casing of ``Sub-task``, ``Subtask`` or ``Sub task``."""
    if not issue_type:
        return False
    return str(issue_type).strip().lower() in SUB_TASK_TYPES


def classify_issue_type(issue_type: str | None) -> IssueKind:
    """Parse a raw issue type into an ``IssueKind``.

    Sub-tasks are matched loosely (see ``is_sub_task``); every other kind needs
    the exact Jira spelling, so ``"bug"`` is ``OTHER`` while ``"Bug"`` is ``BUG``.
    """
    if issue_type is None or not str(issue_type).strip():
        return IssueKind.UNKNOWN
    if is_sub_task(issue_type):
        return IssueKind.SUB_TASK
    return _EXACT_KINDS.get(str(issue_type).strip(), IssueKind.OTHER)


def filter_out_sub_tasks(issues: Iterable[IssueT], context: str = "Unknown context") -> list[IssueT]:
    """Drop sub-tasks while keeping the relative order of everything else."""
    original = list(issues)
    kept = [issue for issue in original if not is_sub_task(issue.issue_type)]
    removed = len(original) - len(kept)
    if removed > 0:
        logger.info("%s - Filtered out %s sub-tasks from %s total issues", context, removed, len(original))
    return kept


_QUALITY_EXCLUDED_KINDS = frozenset({IssueKind(t) for t in QUALITY_EXCLUDED_TYPES} | {IssueKind.UNKNOWN})
_DEFECT_KINDS = frozenset(IssueKind(t) for t in DEFECT_TYPES)


def filter_for_quality_metrics(issues: Iterable[IssueT]) -> list[IssueT]:
    """Issues that count as delivered work in the defect leakage denominator."""
    return [issue for issue in issues if classify_issue_type(issue.issue_type) not in _QUALITY_EXCLUDED_KINDS]


def filter_defect_issues(issues: Iterable[IssueT]) -> list[IssueT]:
    return [issue for issue in issues if classify_issue_type(issue.issue_type) in _DEFECT_KINDS]


def _contains_any(text: str, keywords: Iterable[str]) -> bool:
    return any(keyword in text for keyword in keywords)


def classify_workflow_status(status: str | None) -> WorkflowBucket:
    """Map a status name to a workflow bucket by keyword.

    Parameters
    ----------
    status : str | None
        Raw status (kanban column) name.

    Returns
    -------
    WorkflowBucket
        TODO, IN_PROGRESS or DONE for the first keyword set that matches,
        otherwise UNCATEGORIZED.

    Examples
    --------
    >>> classify_workflow_status("In Review")
    <WorkflowBucket.IN_PROGRESS: 'inProgress'>
    >>> classify_workflow_status("Selected")
    <WorkflowBucket.UNCATEGORIZED: 'uncategorized'>
    """
    if not status:
        return WorkflowBucket.UNCATEGORIZED
    text = str(status).lower()
    if _contains_any(text, TODO_KEYWORDS):
        return WorkflowBucket.TODO
    if _contains_any(text, IN_PROGRESS_KEYWORDS):
        return WorkflowBucket.IN_PROGRESS
    if _contains_any(text, DONE_KEYWORDS):
        return WorkflowBucket.DONE
    return WorkflowBucket.UNCATEGORIZED


def has_done_keyword(status: str | None) -> bool:
    if not status:
        return False
    return _contains_any(str(status).lower(), DONE_KEYWORDS)


@dataclass(frozen=True, slots=True)
class WorkflowBucketPolicy:
    """Keyword-based completion: a done keyword in the status, or a resolution date."""

    def is_completed(self, issue: IssueModel) -> bool:
        return has_done_keyword(issue.status) or issue.resolved is not None

    def is_open(self, issue: IssueModel) -> bool:
        return not has_done_keyword(issue.status)

    def bucket(self, issue: IssueModel) -> WorkflowBucket:
        return classify_workflow_status(issue.status)


@dataclass(frozen=True, slots=True)
class StrictCompletionPolicy:
    """Exact status match against ``STRICT_COMPLETED_STATUSES``."""

    completed_statuses: frozenset[str] = STRICT_COMPLETED_STATUSES

    def is_completed(self, issue: IssueModel) -> bool:
        return issue.status in self.completed_statuses
