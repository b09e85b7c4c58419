from datetime import timedelta

import pytest
from firebase_admin import firestore

from models.outbound_task import TaskAction, TaskStatus
from store.outbound_task_store import OutboundTaskStore, _claim_in_transaction
from fakes import FakeTransaction


@pytest.fixture
def store(fake_db):
    return OutboundTaskStore(fake_db)


def put(store, task_id, **fields):
    doc = {"status": "PENDING", "createdAt": "2025-03-10T04:00:00+00:00", "telegramChatId": "1", "text": "x"}
    doc.update(fields)
    store.collection.document(task_id).set(doc)


def status_of(store, task_id):
    return store.collection.document(task_id).get().to_dict()["status"]


def test_claim_exactly_once(store):
    put(store, "t1")

    results = [store.claim("t1") for _ in range(5)]

    assert results == [True, False, False, False, False]
    assert status_of(store, "t1") == "PROCESSING"


def test_claim_records_claimed_at(store, frozen_now):
    put(store, "t1")

    store.claim("t1")

    assert store.get("t1").claimed_at == frozen_now.isoformat()


def test_claim_missing_task(store):
    assert store.claim("nope") is False


def test_claim_in_transaction_is_compare_and_set(store):
    put(store, "t1", status="delivered")
    ref = store.collection.document("t1")

    assert _claim_in_transaction(FakeTransaction(), ref, "2025-03-10T05:00:00+00:00") is False
    assert status_of(store, "t1") == "delivered"


def test_claim_transaction_error_counts_as_lost(store, monkeypatch):
    put(store, "t1")

    def exhausted(fn):
        def run(tx):
            raise ValueError("Failed to commit transaction in 5 attempts.")
        return run

    monkeypatch.setattr(firestore, "transactional", exhausted)

    assert store.claim("t1") is False
    assert status_of(store, "t1") == "PENDING"


def test_list_pending_orders_and_filters(store):
    put(store, "b", createdAt="2025-03-10T04:00:02+00:00")
    put(store, "a", createdAt="2025-03-10T04:00:01+00:00")
    put(store, "done", status="delivered")

    assert [t.task_id for t in store.list_pending()] == ["a", "b"]


def test_list_pending_marks_malformed_failed(store):
    put(store, "bad", text={"not": "a string"})
    put(store, "good")

    pending = store.list_pending()

    assert [t.task_id for t in pending] == ["good"]
    doc = store.collection.document("bad").get().to_dict()
    assert doc["status"] == "FAILED"
    assert doc["error"] == "Malformed task document"


def test_reclaim_stale_only_old_processing(store, frozen_now):
    put(store, "old", status="PROCESSING", claimedAt=(frozen_now - timedelta(minutes=30)).isoformat())
    put(store, "fresh", status="PROCESSING", claimedAt=(frozen_now - timedelta(minutes=1)).isoformat())

    reclaimed = store.reclaim_stale(timedelta(minutes=10))

    assert reclaimed == 1
    old = store.collection.document("old").get().to_dict()
    assert old["status"] == "PENDING"
    assert old["reclaimCount"] == 1
    assert status_of(store, "fresh") == "PROCESSING"


def test_cleanup_removes_old_terminal_tasks(store, frozen_now):
    old = (frozen_now - timedelta(hours=30)).isoformat()
    recent = (frozen_now - timedelta(hours=2)).isoformat()
    put(store, "old_delivered", status="delivered", createdAt=old)
    put(store, "old_legacy", status="SENT", createdAt=old)
    put(store, "old_failed", status="FAILED", createdAt=old)
    put(store, "old_pending", status="PENDING", createdAt=old)
    put(store, "recent_delivered", status="delivered", createdAt=recent)

    removed = store.cleanup_terminal()

    assert removed == 3
    assert set(store.collection.docs) == {"old_pending", "recent_delivered"}


def test_enqueue_writes_dashboard_shape(store, frozen_now):
    task_id = store.enqueue(123, "Hello", patient_id="p1", original_message_id="m1")

    task = store.get(task_id)
    assert task.status == TaskStatus.PENDING
    assert task.action == TaskAction.SEND
    assert task.target_chat_id == "123"
    assert task.patient_id == "p1"
    assert task.original_message_id == "m1"
    assert task.created_at == frozen_now.isoformat()
    assert "imageUrl" not in store.collection.docs[task_id]


def test_mark_status_writes(store):
    put(store, "t1", status="PROCESSING")

    store.mark_delivered("t1", 55, "2025-03-10T05:00:00+00:00")

    doc = store.collection.document("t1").get().to_dict()
    assert doc["status"] == "delivered"
    assert doc["telegramMessageId"] == 55
    assert doc["sentAt"] == "2025-03-10T05:00:00+00:00"
