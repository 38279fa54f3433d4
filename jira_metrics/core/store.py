"""Persistence collaborator interfaces and an in-memory implementation.

The metrics layer reads synced records through ``MetricsSource`` and writes
snapshots through ``MetricsStore``. Writes are upserts keyed by entity id:
the last write wins and at most one current snapshot exists per entity.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Protocol

from .models import (
    BoardMetricsSnapshot,
    BoardModel,
    ChangelogEntryModel,
    IssueModel,
    KanbanBoardModel,
    KanbanMetricsSnapshot,
    SprintMetricsSnapshot,
    SprintModel,
)


class MetricsSource(Protocol):
    def get_sprint(self, sprint_id: int) -> SprintModel | None: ...

    def get_board(self, board_id: int) -> BoardModel | None: ...

    def get_kanban_board(self, kanban_board_id: int) -> KanbanBoardModel | None: ...

    def list_boards(self) -> list[BoardModel]: ...

    def list_kanban_boards(self) -> list[KanbanBoardModel]: ...

    def get_sprints_for_board(self, board_id: int) -> list[SprintModel]: ...

    def get_issues_for_sprint(self, sprint_id: int) -> list[IssueModel]: ...

    def get_issues_for_kanban_board(self, kanban_board_id: int) -> list[IssueModel]: ...

    def get_issues(self, issue_ids: Iterable[int] | None = None) -> list[IssueModel]: ...

    def get_changelog_entries(self, sprint_id: int | None = None) -> list[ChangelogEntryModel]: ...


class MetricsStore(Protocol):
    def upsert_sprint_metrics(self, snapshot: SprintMetricsSnapshot) -> None: ...

    def upsert_board_metrics(self, snapshot: BoardMetricsSnapshot) -> None: ...

    def upsert_kanban_metrics(self, snapshot: KanbanMetricsSnapshot) -> None: ...

    def get_sprint_metrics(self, sprint_id: int) -> SprintMetricsSnapshot | None: ...

    def get_board_metrics(self, board_id: int) -> BoardMetricsSnapshot | None: ...

    def get_kanban_metrics(self, kanban_board_id: int) -> KanbanMetricsSnapshot | None: ...


class InMemoryRepository:
    """Dict-backed source and store, used for tests and offline runs."""

    def __init__(self):
        self.boards: dict[int, BoardModel] = {}
        self.kanban_boards: dict[int, KanbanBoardModel] = {}
        self.sprints: dict[int, SprintModel] = {}
        self.issues: list[IssueModel] = []
        self.kanban_issues: dict[int, list[IssueModel]] = {}
        self.changelog: list[ChangelogEntryModel] = []
        self.sprint_metrics: dict[int, SprintMetricsSnapshot] = {}
        self.board_metrics: dict[int, BoardMetricsSnapshot] = {}
        self.kanban_metrics: dict[int, KanbanMetricsSnapshot] = {}

    # ------------------ Loading ------------------
    def add_board(self, board: BoardModel) -> None:
        self.boards[board.id] = board

    def add_kanban_board(self, board: KanbanBoardModel, issues: Iterable[IssueModel] = ()) -> None:
        self.kanban_boards[board.id] = board
        self.kanban_issues.setdefault(board.id, []).extend(issues)

    def add_sprint(self, sprint: SprintModel) -> None:
        self.sprints[sprint.id] = sprint

    def add_issues(self, issues: Iterable[IssueModel]) -> None:
        self.issues.extend(issues)

    def add_changelog(self, entries: Iterable[ChangelogEntryModel]) -> None:
        self.changelog.extend(entries)

    # ------------------ MetricsSource ------------------
    def get_sprint(self, sprint_id: int) -> SprintModel | None:
        return self.sprints.get(sprint_id)

    def get_board(self, board_id: int) -> BoardModel | None:
        return self.boards.get(board_id)

    def get_kanban_board(self, kanban_board_id: int) -> KanbanBoardModel | None:
        return self.kanban_boards.get(kanban_board_id)

    def list_boards(self) -> list[BoardModel]:
        return list(self.boards.values())

    def list_kanban_boards(self) -> list[KanbanBoardModel]:
        return list(self.kanban_boards.values())

    def get_sprints_for_board(self, board_id: int) -> list[SprintModel]:
        return [s for s in self.sprints.values() if s.board_id == board_id]

    def get_issues_for_sprint(self, sprint_id: int) -> list[IssueModel]:
        return [i for i in self.issues if i.sprint_id == sprint_id]

    def get_issues_for_kanban_board(self, kanban_board_id: int) -> list[IssueModel]:
        return list(self.kanban_issues.get(kanban_board_id, []))

    def get_issues(self, issue_ids: Iterable[int] | None = None) -> list[IssueModel]:
        if issue_ids is None:
            return list(self.issues)
        wanted = set(issue_ids)
        return [i for i in self.issues if i.id in wanted]

    def get_changelog_entries(self, sprint_id: int | None = None) -> list[ChangelogEntryModel]:
        if sprint_id is None:
            return list(self.changelog)
        return [e for e in self.changelog if sprint_id in (e.from_sprint_id, e.to_sprint_id)]

    # ------------------ MetricsStore ------------------
    def upsert_sprint_metrics(self, snapshot: SprintMetricsSnapshot) -> None:
        self.sprint_metrics[snapshot.sprint_id] = snapshot

    def upsert_board_metrics(self, snapshot: BoardMetricsSnapshot) -> None:
        self.board_metrics[snapshot.board_id] = snapshot

    def upsert_kanban_metrics(self, snapshot: KanbanMetricsSnapshot) -> None:
        self.kanban_metrics[snapshot.kanban_board_id] = snapshot

    def get_sprint_metrics(self, sprint_id: int) -> SprintMetricsSnapshot | None:
        return self.sprint_metrics.get(sprint_id)

    def get_board_metrics(self, board_id: int) -> BoardMetricsSnapshot | None:
        return self.board_metrics.get(board_id)

    def get_kanban_metrics(self, kanban_board_id: int) -> KanbanMetricsSnapshot | None:
        return self.kanban_metrics.get(kanban_board_id)
