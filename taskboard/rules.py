"""
Drop-validity predicates.

A predicate answers "may this item enter this column?" and is supplied per
board. The engine never looks at business fields itself.
"""
from typing import Callable, Iterable

from .schema import Item

# Statuses a personal (non-project) task may use among the base columns
PERSONAL_ALLOWED_STATUSES = ("todo", "in_progress", "done")


def allow_all(item: Item, column_id: str) -> bool:
    return True


def project_board_rule(
    base_column_ids: Iterable[str],
    personal_column_ids: Iterable[str] = PERSONAL_ALLOWED_STATUSES,
    project_field: str = "projectId",
) -> Callable[[Item, str], bool]:
    """
    Rule for a board mixing project tasks and personal tasks.

    - project tasks may not enter custom (non-base) columns
    - personal tasks may enter custom columns, or base columns listed in
      personal_column_ids
    """
    base = set(base_column_ids)
    personal = set(personal_column_ids)

    def accepts(item: Item, column_id: str) -> bool:
        is_custom = column_id not in base
        if item.extra.get(project_field):
            return not is_custom
        return is_custom or column_id in personal

    return accepts


def only_columns(column_ids: Iterable[str]) -> Callable[[Item, str], bool]:
    """Accept any item, but only into the given columns."""
    allowed = set(column_ids)

    def accepts(item: Item, column_id: str) -> bool:
        return column_id in allowed

    return accepts
