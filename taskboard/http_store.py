"""
REST item store for the task API.

    GET   {base_url}/api/tasks          -> [task, ...]
    PATCH {base_url}/api/tasks/{id}     <- {"orderKey": ..., "status": ...}

Requests carry "Authorization: Bearer <token>". Blocking HTTP calls run
in a worker thread when called through persist().
"""
import logging
from typing import Any, Dict, List, Optional

import requests

from .schema import COLUMN_FIELD, POSITION_FIELD, Item
from .store import ItemStore, StoreError

logger = logging.getLogger(__name__)

# Engine field -> wire field
WIRE_FIELDS = {COLUMN_FIELD: "status", POSITION_FIELD: "orderKey"}


class HttpItemStore(ItemStore):
    """Item store backed by the task HTTP API."""

    def __init__(self, base_url: str, token: Optional[str] = None, timeout: float = 10.0):
        super().__init__()
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout
        self.session = requests.Session()

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    @staticmethod
    def _error_message(resp: requests.Response, fallback: str) -> str:
        try:
            return resp.json().get("error") or fallback
        except (ValueError, AttributeError):
            return f"{fallback}: {resp.status_code} {resp.reason}"

    def list_items(self) -> List[Item]:
        try:
            resp = self.session.get(
                f"{self.base_url}/api/tasks", headers=self._headers(), timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise StoreError(f"Failed to fetch tasks: {e}") from e
        if not resp.ok:
            raise StoreError(self._error_message(resp, "Failed to fetch tasks"))

        items = []
        for raw in resp.json():
            try:
                items.append(Item.from_dict(raw))
            except (KeyError, ValueError) as e:
                logger.warning(f"Skipping malformed task record: {e}")
        return items

    def update_fields(self, item_id: str, fields: Dict[str, Any]) -> Item:
        unknown = set(fields) - set(WIRE_FIELDS)
        if unknown:
            raise StoreError(f"Unsupported fields for {item_id}: {sorted(unknown)}")
        body = {WIRE_FIELDS[name]: value for name, value in fields.items()}
        try:
            resp = self.session.patch(
                f"{self.base_url}/api/tasks/{item_id}",
                json=body,
                headers=self._headers(),
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise StoreError(f"Failed to update task {item_id}: {e}") from e
        if not resp.ok:
            raise StoreError(self._error_message(resp, f"Failed to update task {item_id}"))
        return Item.from_dict(resp.json())
