"""
Tests for the approved inventory aggregate, status counts and the donor
notification mailbox.
"""

from __future__ import annotations

from schemas import InventorySummary, UserSession
from services.records import RecordStore


def test_approved_inventory_fixture(store: RecordStore, admin: UserSession) -> None:
    """Only approved records count; the pending money donation does not."""
    food = store.create_food_donation("u_1", 5, 3)
    apparel = store.create_apparel_donation("u_2", 20)
    store.create_pending_money_donation("u_1", "qr")
    store.approve(admin, food.id)
    store.approve(admin, apparel.id)

    inv = store.approved_inventory()

    assert inv == InventorySummary(rice_kg=5, veg_kg=3, clothes={20: 1}, money_count=0, total=2)
    assert inv.model_dump(by_alias=True) == {
        "riceKg": 5,
        "vegKg": 3,
        "clothes": {20: 1},
        "moneyCount": 0,
        "total": 2,
    }


def test_inventory_ignores_rejected_and_counts_money(store: RecordStore, admin: UserSession) -> None:
    a = store.create_food_donation("u_1", 2, 2)
    b = store.create_food_donation("u_1", 10, 1)
    c = store.create_apparel_donation("u_1", 20)
    d = store.create_apparel_donation("u_1", 20)
    e = store.create_apparel_donation("u_1", 45)
    m = store.create_and_complete_money_donation("u_1", "qr")
    for rid in (a.id, c.id, d.id, e.id, m.id):
        store.approve(admin, rid)
    store.reject(admin, b.id, "spoiled")

    inv = store.approved_inventory()
    assert (inv.rice_kg, inv.veg_kg) == (2, 2)
    assert inv.clothes == {20: 2, 45: 1}
    assert inv.money_count == 1
    assert inv.total == 5


def test_inventory_empty_store(store: RecordStore) -> None:
    assert store.approved_inventory() == InventorySummary()


def test_status_counts(store: RecordStore, admin: UserSession) -> None:
    a = store.create_food_donation("u_1", 1, 1)
    b = store.create_food_donation("u_1", 1, 1)
    store.create_food_donation("u_1", 1, 1)
    store.approve(admin, a.id)
    store.reject(admin, b.id, "no")

    counts = store.status_counts(store.list_all())
    assert (counts.total, counts.pending, counts.approved, counts.rejected) == (3, 1, 1, 1)


def test_notify_and_count_unread(store: RecordStore) -> None:
    n = store.notify("u_1", "dr_1", "rejected", "Your food donation was rejected.", "  too late ")
    store.notify("u_2", "dr_2", "approved", "Your apparel donation has been approved!")

    assert n.read is False
    assert n.reason == "too late"
    assert [x.id for x in store.list_notifications("u_1")] == [n.id]
    assert store.count_unread("u_1") == 1
    assert store.count_unread("u_2") == 1
    assert store.count_unread("u_3") == 0


def test_mark_read_and_mark_all_read(store: RecordStore) -> None:
    first = store.notify("u_1", "dr_1", "approved", "one")
    store.notify("u_1", "dr_2", "approved", "two")
    other = store.notify("u_2", "dr_3", "approved", "three")

    assert store.mark_read(first.id) is True
    assert store.mark_read("n_missing") is False
    assert store.count_unread("u_1") == 1

    assert store.mark_all_read("u_1") == 1
    assert store.count_unread("u_1") == 0
    assert store.count_unread("u_2") == 1
    assert [x.id for x in store.list_notifications("u_2")] == [other.id]


def test_notifications_newest_first(store: RecordStore) -> None:
    a = store.notify("u_1", "dr_1", "approved", "a")
    b = store.notify("u_1", "dr_2", "rejected", "b")
    assert [x.id for x in store.list_notifications("u_1")] == [b.id, a.id]


def test_notify_decision_messages(store: RecordStore, admin: UserSession) -> None:
    food = store.create_food_donation("u_1", 1, 1)
    money = store.create_pending_money_donation("u_1", "qr")

    assert store.notify_decision(store.get_by_id(food.id)) is None

    approved = store.notify_decision(store.approve(admin, food.id))
    assert approved.type == "approved"
    assert approved.message == "Your food donation has been approved!"
    assert approved.reason is None

    rejected = store.notify_decision(store.reject(admin, money.id, "payment not received"))
    assert rejected.type == "rejected"
    assert rejected.message == "Your money donation was rejected."
    assert rejected.reason == "payment not received"
    assert store.count_unread("u_1") == 2
