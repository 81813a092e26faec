import json
import pytest
from datetime import date, datetime, timezone
from staffhive_leave.models.cache_entry import CacheEntry
from staffhive_leave.schemas.leave import LeaveRequest
from staffhive_leave.services.leave_cache import LocalLeaveCache

def _record(request_id="LR_1709283600000_abc123", employee_id="EMP001", **overrides):
    data = dict(
        request_id=request_id,
        employee_id=employee_id,
        leave_type="sick",
        start_date=date(2024, 3, 4),
        end_date=date(2024, 3, 5),
        days=2,
        reason="Flu",
        submitted_at=datetime(2024, 3, 1, 9, tzinfo=timezone.utc),
    )
    data.update(overrides)
    return LeaveRequest(**data)

def _write_raw(session_factory, payload):
    db = session_factory()
    db.add(CacheEntry(key="leaveRequests", payload=payload))
    db.commit()
    db.close()

def test_empty_cache_reads_as_empty_list(cache):
    assert cache.read_all() == []

def test_upsert_replaces_by_request_id(cache):
    cache.upsert(_record())
    cache.upsert(_record(reason="Migraine"))
    cache.upsert(_record(request_id="LR_2"))
    records = cache.read_all()
    assert [r.request_id for r in records] == ["LR_1709283600000_abc123", "LR_2"]
    assert records[0].reason == "Migraine"

def test_records_are_stored_in_wire_format(cache, session_factory):
    cache.upsert(_record())
    db = session_factory()
    payload = json.loads(db.query(CacheEntry).first().payload)
    db.close()
    assert payload[0]["requestId"] == "LR_1709283600000_abc123"
    assert payload[0]["startDate"] == "2024-03-04"
    assert payload[0]["status"] == "pending"

def test_corrupted_json_is_treated_as_empty(cache, session_factory):
    _write_raw(session_factory, "{not json")
    assert cache.read_all() == []

def test_non_list_payload_is_treated_as_empty(cache, session_factory):
    _write_raw(session_factory, json.dumps({"requestId": "LR_1"}))
    assert cache.read_all() == []

def test_unreadable_records_are_skipped(cache, session_factory):
    good = _record().to_wire()
    _write_raw(session_factory, json.dumps([{"requestId": "LR_broken"}, good]))
    records = cache.read_all()
    assert [r.request_id for r in records] == ["LR_1709283600000_abc123"]

def test_find_falls_back_to_legacy_id(cache):
    cache.upsert(_record(legacy_id="65f0c2a1"))
    assert cache.find("LR_1709283600000_abc123").legacy_id == "65f0c2a1"
    assert cache.find("65f0c2a1").request_id == "LR_1709283600000_abc123"
    assert cache.find("missing") is None

def test_legacy_numeric_ids_are_read_as_strings(cache, session_factory):
    record = _record().to_wire()
    record["id"] = 42
    _write_raw(session_factory, json.dumps([record]))
    assert cache.find("42") is not None

def test_for_employee_and_unsynced(cache):
    cache.upsert(_record(request_id="LR_a", employee_id="EMP001", synced=False))
    cache.upsert(_record(request_id="LR_b", employee_id="EMP002"))
    assert [r.request_id for r in cache.for_employee("EMP001")] == ["LR_a"]
    assert [r.request_id for r in cache.unsynced()] == ["LR_a"]

def test_writes_notify_other_origins_only(cache, session_factory, relay):
    seen_by_other, seen_by_self = [], []
    relay.on_storage_changed(seen_by_other.append, origin="other-tab")
    relay.on_storage_changed(seen_by_self.append, origin=cache.origin)
    cache.upsert(_record())
    assert seen_by_other == [{"key": "leaveRequests", "origin": cache.origin}]
    assert seen_by_self == []

def test_separate_keys_do_not_share_records(cache, session_factory):
    other = LocalLeaveCache(session_factory, key="archivedLeaveRequests")
    cache.upsert(_record())
    assert other.read_all() == []

def test_merge_reconciles_records_by_backend_id(cache):
    cache.upsert(_record(request_id="LR_local", legacy_id="65f0c2a1", reason="Flu"))
    cache.merge([_record(request_id="LR_server", legacy_id="65f0c2a1", reason="Flu and fever")])
    records = cache.read_all()
    assert [(r.request_id, r.reason) for r in records] == [("LR_server", "Flu and fever")]

def test_merge_can_keep_queued_local_changes(cache):
    cache.upsert(_record(request_id="LR_a", status="approved", synced=False))
    cache.upsert(_record(request_id="LR_b"))
    cache.merge(
        [_record(request_id="LR_a", status="pending"), _record(request_id="LR_b", reason="Migraine")],
        keep_unsynced=True,
    )
    records = {r.request_id: r for r in cache.read_all()}
    assert records["LR_a"].status == "approved"
    assert records["LR_b"].reason == "Migraine"

def test_replace_rekeys_a_record(cache):
    cache.upsert(_record(request_id="LR_local", synced=False))
    cache.upsert(_record(request_id="LR_other"))
    cache.replace("LR_local", _record(request_id="LR_server", legacy_id="doc-1"))
    assert sorted(r.request_id for r in cache.read_all()) == ["LR_other", "LR_server"]
    assert cache.find("doc-1").request_id == "LR_server"
