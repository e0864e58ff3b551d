"""
Board configuration, loaded from YAML.

Example (taskboard.example.yaml):

    poll_interval: 5
    skip_refresh_while_dragging: true
    db_path: ~/.local/share/taskboard/items.db
    api_url: null
    token_env: TASKBOARD_API_TOKEN
    personal_columns: [todo, in_progress, done]
    columns:
      - {id: todo, title: To do}
      - {id: in_progress, title: In progress}
      - {id: review, title: Review}
      - {id: done, title: Done}
      - {id: someday, title: Someday, custom: true}
"""
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

import yaml

from .rules import PERSONAL_ALLOWED_STATUSES
from .schema import ColumnDefinition

CONFIG_PATH = Path("~/.config/taskboard/config.yaml").expanduser()


class ConfigError(Exception):
    """Raised when configuration is invalid or incomplete."""
    pass


def _default_columns() -> List[ColumnDefinition]:
    return [
        ColumnDefinition("todo", "To do"),
        ColumnDefinition("in_progress", "In progress"),
        ColumnDefinition("review", "Review"),
        ColumnDefinition("done", "Done"),
    ]


@dataclass
class BoardConfig:
    """Runtime configuration for a board and its item store."""

    # Refresh loop
    poll_interval: float = 5.0
    skip_refresh_while_dragging: bool = True

    # Columns
    columns: List[ColumnDefinition] = field(default_factory=_default_columns)
    personal_columns: List[str] = field(default_factory=lambda: list(PERSONAL_ALLOWED_STATUSES))

    # Item store: SQLite unless api_url is set
    db_path: str = "~/.local/share/taskboard/items.db"
    api_url: Optional[str] = None
    token_env: str = "TASKBOARD_API_TOKEN"

    def __post_init__(self):
        self.db_path = str(Path(self.db_path).expanduser())
        if self.poll_interval <= 0:
            raise ConfigError(f"poll_interval must be positive, got {self.poll_interval}")
        ids = [c.id for c in self.columns]
        if len(ids) != len(set(ids)):
            raise ConfigError(f"Duplicate column ids: {ids}")

    @property
    def base_column_ids(self) -> List[str]:
        return [c.id for c in self.columns if not c.custom]

    @property
    def api_token(self) -> Optional[str]:
        return os.environ.get(self.token_env) if self.token_env else None

    @classmethod
    def from_dict(cls, data: dict) -> "BoardConfig":
        if not isinstance(data, dict):
            raise ConfigError(f"Config must be a mapping, got {type(data).__name__}")

        kwargs = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        if "columns" in kwargs:
            kwargs["columns"] = [_parse_column(raw) for raw in kwargs["columns"] or []]
        if "poll_interval" in kwargs:
            try:
                kwargs["poll_interval"] = float(kwargs["poll_interval"])
            except (TypeError, ValueError):
                raise ConfigError(f"poll_interval must be a number, got {kwargs['poll_interval']!r}")
        return cls(**kwargs)

    @classmethod
    def load(cls, path: Optional[str] = None) -> "BoardConfig":
        """Load config from a YAML file, falling back to defaults when it is missing."""
        cfg_path = Path(path) if path else CONFIG_PATH
        if not cfg_path.exists():
            return cls()
        try:
            with open(cfg_path) as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"Cannot parse {cfg_path}: {e}") from e
        return cls.from_dict(data or {})


def _parse_column(raw) -> ColumnDefinition:
    if isinstance(raw, str):
        return ColumnDefinition(raw)
    if not isinstance(raw, dict) or not raw.get("id"):
        raise ConfigError(f"Column entry needs an 'id': {raw!r}")
    return ColumnDefinition(
        id=str(raw["id"]),
        title=str(raw.get("title", "")),
        custom=bool(raw.get("custom", False)),
    )
