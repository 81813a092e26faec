"""
Local durable cache for leave requests.

Mirrors the browser-storage fallback of the dashboard: one named
collection, stored as a JSON document and read/written wholesale.
Last write wins; records are matched by requestId, then by backend id.
"""
import json
import logging
import uuid
from typing import List, Optional

from sqlalchemy.orm import Session, sessionmaker

from staffhive_leave.core.config import settings
from staffhive_leave.core.exceptions import CacheCorruptionError
from staffhive_leave.models.cache_entry import CacheEntry
from staffhive_leave.schemas.leave import LeaveRequest
from staffhive_leave.services.notification import NotificationRelay

logger = logging.getLogger(__name__)


class LocalLeaveCache:
    def __init__(
        self,
        session_factory: sessionmaker,
        key: Optional[str] = None,
        relay: Optional[NotificationRelay] = None,
        origin: Optional[str] = None,
    ):
        self._session_factory = session_factory
        self.key = key or settings.cache_key
        self.relay = relay
        self.origin = origin or uuid.uuid4().hex

    def _get_entry(self, db: Session) -> Optional[CacheEntry]:
        return db.query(CacheEntry).filter(CacheEntry.key == self.key).first()

    def _decode(self, payload: str) -> List[LeaveRequest]:
        try:
            items = json.loads(payload)
        except (TypeError, json.JSONDecodeError) as e:
            raise CacheCorruptionError(self.key, str(e)) from e
        if not isinstance(items, list):
            raise CacheCorruptionError(self.key, f"expected a list, got {type(items).__name__}")

        requests = []
        for item in items:
            try:
                requests.append(LeaveRequest.model_validate(item))
            except ValueError as e:
                logger.warning(f"Skipping unreadable cached leave request in '{self.key}': {e}")
        return requests

    def read_all(self) -> List[LeaveRequest]:
        db = self._session_factory()
        try:
            entry = self._get_entry(db)
            if entry is None:
                return []
            return self._decode(entry.payload)
        except CacheCorruptionError as e:
            logger.error(f"{e.message}; treating cache as empty")
            return []
        finally:
            db.close()

    def write_all(self, requests: List[LeaveRequest]) -> None:
        payload = json.dumps([r.to_wire() for r in requests])
        db = self._session_factory()
        try:
            entry = self._get_entry(db)
            if entry is None:
                db.add(CacheEntry(key=self.key, payload=payload))
            else:
                entry.payload = payload
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

        if self.relay is not None:
            self.relay.storage_changed(self.key, origin=self.origin)

    def merge(self, incoming: List[LeaveRequest], keep_unsynced: bool = False) -> None:
        """
        Read-modify-write: replace records with the same requestId (or the
        same backend id), append the rest. With keep_unsynced, records still
        waiting to reach the backend are not overwritten.
        """
        if not incoming:
            return
        requests = self.read_all()
        positions = {r.request_id: index for index, r in enumerate(requests)}
        legacy_positions = {r.legacy_id: index for index, r in enumerate(requests) if r.legacy_id is not None}
        for request in incoming:
            index = positions.get(request.request_id)
            if index is None and request.legacy_id is not None:
                index = legacy_positions.get(request.legacy_id)
            if index is None:
                index = len(requests)
                requests.append(request)
            elif keep_unsynced and not requests[index].synced:
                continue
            else:
                positions.pop(requests[index].request_id, None)
                requests[index] = request
            positions[request.request_id] = index
            if request.legacy_id is not None:
                legacy_positions[request.legacy_id] = index
        self.write_all(requests)

    def upsert(self, request: LeaveRequest) -> None:
        self.merge([request])

    def replace(self, old_request_id: str, request: LeaveRequest) -> None:
        """Store `request` in place of the record cached as `old_request_id`."""
        requests = [r for r in self.read_all() if r.request_id not in (old_request_id, request.request_id)]
        requests.append(request)
        self.write_all(requests)

    def find(self, request_id: str) -> Optional[LeaveRequest]:
        requests = self.read_all()
        for request in requests:
            if request.matches_id(request_id):
                return request
        # Migration shim: records created before requestId carried only the backend id
        for request in requests:
            if request.matches_id(request_id, include_legacy=True):
                logger.warning(f"Matched cached leave request by legacy id {request_id}")
                return request
        return None

    def for_employee(self, employee_id: str) -> List[LeaveRequest]:
        return [r for r in self.read_all() if r.employee_id == str(employee_id)]

    def unsynced(self) -> List[LeaveRequest]:
        return [r for r in self.read_all() if not r.synced]
