"""Sortable, selectable process table model."""

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from gputop.models import ProcessRecord


class SortKey(Enum):
    """Sort keys for the process table."""

    PID = "pid"
    KIND = "kind"
    NAME = "name"
    MEMORY = "memory"


_SORT_FUNCS: dict[SortKey, Callable[[ProcessRecord], Any]] = {
    SortKey.PID: lambda p: p.pid,
    SortKey.KIND: lambda p: p.kind.value,
    SortKey.NAME: lambda p: p.name,
    SortKey.MEMORY: lambda p: p.memory_sort_value,
}


@dataclass(slots=True)
class SortState:
    """Active sort column and direction. No key means snapshot order."""

    key: SortKey | None = None
    descending: bool = True


class ProcessTableModel:
    """
    Row model behind the process table.

    Rows are replaced wholesale on every snapshot. Selection is a set of
    row indices into the current ordering, so it refers to positions and
    not to particular processes.
    """

    def __init__(self) -> None:
        self._rows: list[ProcessRecord] = []
        self._sort = SortState()
        self._selection: set[int] = set()

    @property
    def rows(self) -> list[ProcessRecord]:
        """Current rows in display order."""
        return list(self._rows)

    @property
    def sort_state(self) -> SortState:
        return SortState(self._sort.key, self._sort.descending)

    @property
    def selection(self) -> frozenset[int]:
        return frozenset(self._selection)

    @property
    def has_selection(self) -> bool:
        """Whether any row is selected; drives the detail view."""
        return bool(self._selection)

    def set_rows(self, records: Iterable[ProcessRecord]) -> None:
        """Replace all rows and re-apply the active sort."""
        self._rows = list(records)
        self.sort()

    def click_header(self, key: SortKey) -> SortState:
        """
        Handle a click on a column header.

        Clicking the active column flips direction; clicking another column
        switches to it in descending order.
        """
        if self._sort.key is key:
            self._sort.descending = not self._sort.descending
        else:
            self._sort.key = key
            self._sort.descending = True
        self.sort()
        return self.sort_state

    def sort(self) -> None:
        """Stable in-place sort by the active key; ties keep their order."""
        if self._sort.key is None:
            return
        self._rows.sort(key=_SORT_FUNCS[self._sort.key], reverse=self._sort.descending)

    def toggle_row(self, index: int) -> None:
        """Flip whether the row at index is selected. Indices outside the rows are ignored."""
        if index in self._selection:
            self._selection.remove(index)
        elif 0 <= index < len(self._rows):
            self._selection.add(index)

    def clear_selection(self) -> None:
        self._selection.clear()

    def selected_rows(self) -> list[ProcessRecord]:
        """Rows at the selected indices that still exist, in display order."""
        return [self._rows[i] for i in sorted(self._selection) if 0 <= i < len(self._rows)]
