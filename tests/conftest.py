"""Shared fixtures for taskboard tests."""

import sys
from pathlib import Path

import pytest

# Ensure the repo root is importable
sys.path.insert(0, str(Path(__file__).parent.parent))

from taskboard.schema import Item, ColumnDefinition
from taskboard.store import StoreError


class RecordingStore:
    """In-memory item store that records persist calls."""

    def __init__(self, items=(), fail=False):
        self.items = {item.id: item for item in items}
        self.fail = fail
        self.calls = []
        self.list_calls = 0

    def list_items(self):
        self.list_calls += 1
        return list(self.items.values())

    async def persist(self, item_id, fields, silent=False):
        self.calls.append((item_id, dict(fields), silent))
        if self.fail:
            raise StoreError(f"persist failed for {item_id}")
        self.items[item_id] = self.items[item_id].with_fields(fields)
        return self.items[item_id]


def make_items(rows):
    """[(id, column, key), ...] -> [Item, ...]"""
    return [Item(id=i, column_id=c, position_key=k, title=i) for i, c, k in rows]


@pytest.fixture
def columns():
    return [
        ColumnDefinition("todo", "To do"),
        ColumnDefinition("in_progress", "In progress"),
        ColumnDefinition("done", "Done"),
    ]


@pytest.fixture
def abc_items():
    return make_items([
        ("A", "todo", "a0"),
        ("B", "todo", "a1"),
        ("C", "todo", "a2"),
    ])
