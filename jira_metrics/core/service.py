"""MetricsService: orchestrates reading synced records, computing and upserting snapshots."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from jira_metrics.analytics.commentary import generate_sprint_commentary
from jira_metrics.analytics.metrics.board import calculate_board_metrics
from jira_metrics.analytics.metrics.kanban import WipLimitPolicy, calculate_kanban_metrics, summarize_kanban_boards
from jira_metrics.analytics.metrics.sprint import calculate_sprint_metrics

from .config import AppSettings
from .metrics_config import load_settings
from .models import (
    BoardMetricsSnapshot,
    CommentaryResult,
    KanbanMetricsSnapshot,
    SprintMetricsSnapshot,
    SprintModel,
)
from .store import MetricsSource, MetricsStore

logger = logging.getLogger(__name__)

CommentaryFn = Callable[..., CommentaryResult]


@dataclass(slots=True)
class BatchResult:
    """Outcome of a batch run; failures are recorded per entity and never abort the batch."""

    processed: list[int] = field(default_factory=list)
    skipped: list[int] = field(default_factory=list)
    failed: list[int] = field(default_factory=list)
    sprints_processed: int = 0


class MetricsService:
    def __init__(
        self,
        source: MetricsSource,
        store: MetricsStore,
        *,
        now: datetime | None = None,
        settings: AppSettings | None = None,
        wip_policy: WipLimitPolicy | None = None,
        commentary: CommentaryFn = generate_sprint_commentary,
    ):
        self.source = source
        self.store = store
        self.now = now
        self.settings = settings or load_settings()
        self.wip_policy = wip_policy
        self._commentary = commentary

    # ------------------ Sprint ------------------
    def calculate_sprint_metrics(self, sprint_id: int) -> SprintMetricsSnapshot | None:
        sprint = self.source.get_sprint(sprint_id)
        if sprint is None:
            logger.warning("Sprint %s not found", sprint_id)
            return None
        issues = self.source.get_issues_for_sprint(sprint_id)
        changelog = self.source.get_changelog_entries()
        lookup = None
        if changelog:
            # Issues moved out of the sprint are no longer in its issue list
            ids = {e.issue_id for e in changelog if e.issue_id is not None}
            lookup = self.source.get_issues(ids) + issues
        return calculate_sprint_metrics(sprint, issues, changelog, issue_lookup=lookup, now=self.now)

    def save_sprint_metrics(self, snapshot: SprintMetricsSnapshot) -> SprintMetricsSnapshot:
        """Attach commentary (best effort) and upsert the snapshot."""
        sprint = self.source.get_sprint(snapshot.sprint_id)
        if sprint is not None:
            try:
                result = self._commentary(sprint, snapshot, now=self.now)
                snapshot.commentary = result.commentary
                logger.info("Generated commentary for sprint %s", snapshot.sprint_id)
            except Exception as exc:
                logger.warning("Failed to generate commentary for sprint %s: %s", snapshot.sprint_id, exc)
                snapshot.commentary = None
        self.store.upsert_sprint_metrics(snapshot)
        return snapshot

    def generate_sprint_commentary(self, sprint_id: int) -> CommentaryResult | None:
        """On-demand commentary from the stored snapshot (computed when missing)."""
        sprint = self.source.get_sprint(sprint_id)
        if sprint is None:
            logger.warning("Sprint %s not found", sprint_id)
            return None
        snapshot = self.store.get_sprint_metrics(sprint_id) or self.calculate_sprint_metrics(sprint_id)
        if snapshot is None:
            return None
        return self._commentary(sprint, snapshot, now=self.now)

    # ------------------ Board ------------------
    def _sprint_snapshots(self, sprints: list[SprintModel], *, recalculate: bool) -> dict[int, Any]:
        snapshots: dict[int, SprintMetricsSnapshot | None] = {}
        for sprint in sprints:
            existing = None if recalculate else self.store.get_sprint_metrics(sprint.id)
            snapshots[sprint.id] = existing or self.calculate_sprint_metrics(sprint.id)
        return snapshots

    def calculate_board_metrics(self, board_id: int) -> BoardMetricsSnapshot | None:
        board = self.source.get_board(board_id)
        if board is None:
            logger.warning("Board %s not found", board_id)
            return None
        sprints = self.source.get_sprints_for_board(board_id)
        snapshots = self._sprint_snapshots(sprints, recalculate=False)
        return calculate_board_metrics(board, sprints, snapshots, now=self.now)

    def calculate_and_save_board_metrics(self, board_id: int) -> BoardMetricsSnapshot | None:
        """Recalculate and save every sprint of the board, then the board snapshot."""
        board_snapshot, _ = self._calculate_and_save_board(board_id)
        return board_snapshot

    def _calculate_and_save_board(self, board_id: int) -> tuple[BoardMetricsSnapshot | None, int]:
        board = self.source.get_board(board_id)
        if board is None:
            logger.warning("Board %s not found", board_id)
            return None, 0
        logger.info("Starting metrics calculation for board %s", board_id)
        sprints = self.source.get_sprints_for_board(board_id)
        snapshots = self._sprint_snapshots(sprints, recalculate=True)
        saved = 0
        for snapshot in snapshots.values():
            if snapshot is not None:
                self.save_sprint_metrics(snapshot)
                saved += 1
        board_snapshot = calculate_board_metrics(board, sprints, snapshots, now=self.now)
        if board_snapshot is not None:
            self.store.upsert_board_metrics(board_snapshot)
        logger.info("Completed metrics calculation for board %s: %s sprints processed", board_id, saved)
        return board_snapshot, saved

    def calculate_and_save_all_metrics(self) -> BatchResult:
        logger.info("Starting metrics calculation for all boards")
        result = BatchResult()
        for board in self.source.list_boards():
            try:
                snapshot, saved = self._calculate_and_save_board(board.id)
            except Exception:
                logger.exception("Failed to process board %s", board.id)
                result.failed.append(board.id)
                continue
            if snapshot is None:
                result.skipped.append(board.id)
                continue
            result.processed.append(board.id)
            result.sprints_processed += saved
        logger.info(
            "Completed metrics calculation: %s boards, %s sprints processed, %s failed",
            len(result.processed),
            result.sprints_processed,
            len(result.failed),
        )
        return result

    # ------------------ Kanban ------------------
    def calculate_kanban_metrics(self, kanban_board_id: int) -> KanbanMetricsSnapshot | None:
        board = self.source.get_kanban_board(kanban_board_id)
        if board is None:
            logger.warning("Kanban board %s not found", kanban_board_id)
            return None
        issues = self.source.get_issues_for_kanban_board(kanban_board_id)
        snapshot = calculate_kanban_metrics(
            board,
            issues,
            now=self.now,
            wip_policy=self.wip_policy,
            settings=self.settings,
        )
        if snapshot is not None:
            self.store.upsert_kanban_metrics(snapshot)
        return snapshot

    def calculate_kanban_metrics_for_all_boards(self) -> BatchResult:
        logger.info("Starting metrics calculation for all kanban boards")
        result = BatchResult()
        for board in self.source.list_kanban_boards():
            try:
                snapshot = self.calculate_kanban_metrics(board.id)
            except Exception:
                logger.exception("Error calculating metrics for kanban board %s", board.id)
                result.failed.append(board.id)
                continue
            if snapshot is None:
                logger.warning("Skipped kanban board %s - no issues found", board.id)
                result.skipped.append(board.id)
            else:
                result.processed.append(board.id)
        logger.info(
            "Kanban metrics calculation completed: calculated %s, skipped %s, failed %s",
            len(result.processed),
            len(result.skipped),
            len(result.failed),
        )
        return result

    def summarize_kanban(self) -> dict[str, Any] | None:
        snapshots = [self.store.get_kanban_metrics(b.id) for b in self.source.list_kanban_boards()]
        return summarize_kanban_boards(snapshots)
