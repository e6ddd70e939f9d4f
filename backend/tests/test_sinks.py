"""
Side-effect sink tests.

Verifies:
- Database sinks resolve role / ALL / user targets into per-user rows
- A failing sink is logged and never rolls back the committed mutation
- Broadcast subscribers that raise are skipped
"""

import logging

import pytest

from shopstock.extensions import db
from shopstock.models import AuditLog, Notification, RestockRequest, RestockStatus, User, ROLE_ADMIN
from shopstock.services import restock_service
from shopstock.services.notification_service import (
    DatabaseAuditSink,
    DatabaseNotificationSink,
    InMemoryBroadcaster,
    SideEffects,
    init_sinks,
    list_user_notifications,
    mark_notification_read,
)
from shopstock.errors import NotFound


class ExplodingNotifier:
    def notify(self, target, payload):
        raise RuntimeError("mail server down")


class ExplodingAuditor:
    def record(self, event):
        raise RuntimeError("audit store down")


# =============================================================================
# DATABASE SINKS
# =============================================================================


class TestDatabaseNotificationSink:

    def test_role_target_fans_out(self, admin, owner, db_session):
        second_admin = User(username="admin2", email="admin2@factory.test", role=ROLE_ADMIN)
        db_session.add(second_admin)
        db_session.commit()

        DatabaseNotificationSink().notify(ROLE_ADMIN, {"type": "LOW_STOCK", "message": "low"})

        recipients = {n.user_id for n in db_session.query(Notification).all()}
        assert recipients == {admin.id, second_admin.id}

    def test_all_target(self, admin, owner, db_session):
        DatabaseNotificationSink().notify("ALL", {"type": "GENERAL", "message": "hello"})
        assert db_session.query(Notification).count() == 2

    def test_user_target(self, admin, owner, db_session):
        DatabaseNotificationSink().notify(owner.id, {"type": "RESTOCK_STATUS", "message": "approved", "priority": "HIGH"})

        notification = db_session.query(Notification).one()
        assert notification.user_id == owner.id
        assert notification.priority == "HIGH"

    def test_unknown_target(self, admin, db_session):
        with pytest.raises(ValueError):
            DatabaseNotificationSink().notify("Cashier", {"type": "GENERAL", "message": "x"})

    def test_inactive_users_skipped(self, admin, owner, db_session):
        owner.is_active = False
        db_session.commit()

        DatabaseNotificationSink().notify("ALL", {"type": "GENERAL", "message": "hello"})
        assert [n.user_id for n in db_session.query(Notification).all()] == [admin.id]


class TestDatabaseAuditSink:

    def test_event_persisted(self, admin, shop, db_session):
        DatabaseAuditSink().record({
            "type": "restock",
            "action": "created",
            "entity": "RestockRequest",
            "entity_id": 7,
            "user_id": admin.id,
            "shop_id": shop.id,
            "metadata": {"requested_amount": 5},
        })

        row = db_session.query(AuditLog).one()
        assert row.action == "created"
        assert row.meta == {"requested_amount": 5}
        assert row.status == "success"


class TestDefaultSinksEndToEnd:

    def test_restock_creation_writes_rows(self, app, owner_caller, owner, admin, shop, product):
        restock_service.create_restock_request(owner_caller, shop.id, product.id, 10)

        assert db.session.query(AuditLog).filter_by(action="created").count() == 1
        admin_inbox = list_user_notifications(admin.id)
        assert [n.type for n in admin_inbox] == ["RESTOCK_REQUEST"]
        # the creator is not notified about their own request
        assert list_user_notifications(owner.id) == []

    def test_mark_read(self, app, owner_caller, admin, shop, product):
        restock_service.create_restock_request(owner_caller, shop.id, product.id, 10)
        notification = list_user_notifications(admin.id)[0]

        updated = mark_notification_read(admin.id, notification.id)
        assert updated.is_read is True
        assert updated.read_at is not None
        assert list_user_notifications(admin.id, unread_only=True) == []

        with pytest.raises(NotFound):
            mark_notification_read(owner_caller.user_id, notification.id)


# =============================================================================
# FAILURE ISOLATION
# =============================================================================


class TestBestEffortDelivery:

    def test_failing_notifier_keeps_transition(self, app, admin_caller, shop, product, caplog):
        init_sinks(app, notifier=ExplodingNotifier(), broadcaster=InMemoryBroadcaster())
        caplog.set_level(logging.ERROR)

        request = restock_service.create_restock_request(admin_caller, shop.id, product.id, 10)
        restock_service.approve_restock_request(admin_caller, request.id)

        db.session.expire_all()
        assert db.session.get(RestockRequest, request.id).status == RestockStatus.APPROVED_PENDING.value
        failures = [r for r in caplog.records if getattr(r, "sink", None) == "notification"]
        assert failures
        assert failures[0].sink_event in {"RESTOCK_REQUEST", "RESTOCK_STATUS"}

    def test_failing_auditor_keeps_stock(self, app, admin_caller, shop, product, caplog):
        init_sinks(app, auditor=ExplodingAuditor(), broadcaster=InMemoryBroadcaster())

        request = restock_service.create_restock_request(admin_caller, shop.id, product.id, 30)
        restock_service.approve_restock_request(admin_caller, request.id)
        restock_service.fulfill_restock_request(admin_caller, request.id)

        db.session.expire_all()
        assert db.session.get(RestockRequest, request.id).status == RestockStatus.FULFILLED.value
        assert product.total_stock == 70
        assert any(getattr(r, "sink", None) == "audit" for r in caplog.records)

    def test_dispatch_counts_failures(self, app, sinks):
        effects = SideEffects()
        effects.notify(1, type="GENERAL", message="one")
        effects.notify(2, type="GENERAL", message="two")
        effects.broadcast("stock.updated", {"product_id": 1})

        failures = effects.dispatch(init_sinks(
            app, notifier=ExplodingNotifier(), auditor=sinks.auditor, broadcaster=sinks.broadcaster,
        ))

        assert failures == 2
        assert list(sinks.broadcaster.history) == [("stock.updated", {"product_id": 1})]


class TestInMemoryBroadcaster:

    def test_failing_subscriber_is_skipped(self, app):
        broadcaster = InMemoryBroadcaster()
        received = []

        def closed_socket(name, payload):
            raise RuntimeError("socket closed")

        broadcaster.subscribe(closed_socket)
        broadcaster.subscribe(lambda name, payload: received.append(name))

        broadcaster.broadcast("restock_request.created", {"id": 1})

        assert received == ["restock_request.created"]
        assert broadcaster.subscriber_count == 2

    def test_unsubscribe(self, app):
        broadcaster = InMemoryBroadcaster()
        subscription_id = broadcaster.subscribe(lambda name, payload: None)

        assert broadcaster.unsubscribe(subscription_id) is True
        assert broadcaster.unsubscribe(subscription_id) is False
        assert broadcaster.subscriber_count == 0

    def test_history_is_bounded(self, app):
        broadcaster = InMemoryBroadcaster(history_size=2)
        for i in range(3):
            broadcaster.broadcast("stock.updated", {"i": i})

        assert [p["i"] for _, p in broadcaster.history] == [1, 2]
