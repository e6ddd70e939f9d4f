# Overview: Notification, audit and live-update sinks plus best-effort dispatch.

"""
Side-effect sinks for the restock engine.

INVARIANTS:
- Sinks run AFTER the stock/state transaction commits. The committed mutation
  is the source of truth; a sink failure never rolls it back.
- Every failure is logged with the sink kind, event and entity; none propagate.
- Sinks live in app.extensions and are swappable (tests inject recording or
  failing sinks; a multi-instance deployment can back the broadcaster with a
  shared pub/sub store).
"""
from __future__ import annotations

import threading
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Callable, Protocol

from flask import current_app

from ..errors import NotFound
from ..extensions import db
from ..models import AuditLog, Notification, User, ROLES
from shopstock.time_utils import utcnow

SINKS_EXTENSION_KEY = "shopstock.sinks"

TARGET_ALL = "ALL"

PRIORITY_NORMAL = "NORMAL"
PRIORITY_HIGH = "HIGH"


class NotificationSink(Protocol):
    def notify(self, target: int | str, payload: dict) -> None: ...


class AuditSink(Protocol):
    def record(self, event: dict) -> None: ...


class Broadcaster(Protocol):
    def broadcast(self, event_name: str, payload: dict) -> None: ...


class DatabaseNotificationSink:
    """Persists notifications as per-user rows."""

    def notify(self, target: int | str, payload: dict) -> None:
        for user_id in self._resolve_target(target):
            db.session.add(Notification(
                user_id=user_id,
                type=payload.get("type", "GENERAL"),
                priority=payload.get("priority", PRIORITY_NORMAL),
                message=payload["message"],
                data=payload.get("data"),
            ))
        db.session.commit()

    @staticmethod
    def _resolve_target(target: int | str) -> list[int]:
        if isinstance(target, int):
            return [target]
        query = db.session.query(User.id).filter(User.is_active.is_(True))
        if target == TARGET_ALL:
            return [row[0] for row in query.all()]
        if target in ROLES:
            return [row[0] for row in query.filter(User.role == target).all()]
        raise ValueError(f"Unknown notification target: {target!r}")


class DatabaseAuditSink:
    """Appends audit events to the audit_logs table."""

    def record(self, event: dict) -> None:
        db.session.add(AuditLog(
            type=event["type"],
            action=event["action"],
            entity=event["entity"],
            entity_id=event.get("entity_id"),
            user_id=event.get("user_id"),
            shop_id=event.get("shop_id"),
            meta=event.get("metadata"),
            message=event.get("message"),
            status=event.get("status", "success"),
        ))
        db.session.commit()


class InMemoryBroadcaster:
    """
    Process-local pub/sub registry for live dashboard/notification pushes.

    Transports (SSE, WebSocket) subscribe a callback; broadcast fans out to
    every subscriber. A subscriber that raises is logged and skipped.
    """

    def __init__(self, history_size: int = 100):
        self._subscribers: dict[int, Callable[[str, dict], None]] = {}
        self._next_id = 1
        self._lock = threading.Lock()
        self.history: deque[tuple[str, dict]] = deque(maxlen=history_size)

    def subscribe(self, callback: Callable[[str, dict], None]) -> int:
        with self._lock:
            subscription_id = self._next_id
            self._next_id += 1
            self._subscribers[subscription_id] = callback
        return subscription_id

    def unsubscribe(self, subscription_id: int) -> bool:
        with self._lock:
            return self._subscribers.pop(subscription_id, None) is not None

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def broadcast(self, event_name: str, payload: dict) -> None:
        self.history.append((event_name, payload))
        with self._lock:
            subscribers = list(self._subscribers.items())
        for subscription_id, callback in subscribers:
            try:
                callback(event_name, payload)
            except Exception:
                current_app.logger.exception(
                    "Broadcast subscriber %s failed for %s", subscription_id, event_name
                )


@dataclass
class Sinks:
    notifier: NotificationSink
    auditor: AuditSink
    broadcaster: Broadcaster


def init_sinks(app, *, notifier=None, auditor=None, broadcaster=None) -> Sinks:
    sinks = Sinks(
        notifier=notifier or DatabaseNotificationSink(),
        auditor=auditor or DatabaseAuditSink(),
        broadcaster=broadcaster or InMemoryBroadcaster(),
    )
    app.extensions[SINKS_EXTENSION_KEY] = sinks
    return sinks


def get_sinks() -> Sinks:
    return current_app.extensions[SINKS_EXTENSION_KEY]


@dataclass
class SideEffects:
    """
    Side effects collected during a unit of work and dispatched after commit.

    Build a fresh instance inside each retry attempt so a rolled-back attempt
    leaves nothing behind.
    """
    notifications: list[tuple[int | str, dict]] = field(default_factory=list)
    audits: list[dict] = field(default_factory=list)
    broadcasts: list[tuple[str, dict]] = field(default_factory=list)

    def notify(
        self,
        target: int | str,
        *,
        type: str,
        message: str,
        data: dict[str, Any] | None = None,
        priority: str = PRIORITY_NORMAL,
    ) -> None:
        self.notifications.append(
            (target, {"type": type, "message": message, "data": data or {}, "priority": priority})
        )

    def audit(self, **event) -> None:
        self.audits.append(event)

    def broadcast(self, event_name: str, payload: dict) -> None:
        self.broadcasts.append((event_name, payload))

    def dispatch(self, sinks: Sinks | None = None) -> int:
        """Deliver everything best-effort. Returns the number of failed deliveries."""
        sinks = sinks or get_sinks()
        failures = 0

        for event in self.audits:
            failures += _deliver(
                "audit", event.get("action"), event.get("entity_id"),
                lambda e=event: sinks.auditor.record(e),
            )
        for target, payload in self.notifications:
            failures += _deliver(
                "notification", payload.get("type"), target,
                lambda t=target, p=payload: sinks.notifier.notify(t, p),
            )
        for event_name, payload in self.broadcasts:
            failures += _deliver(
                "broadcast", event_name, payload.get("id") or payload.get("product_id"),
                lambda n=event_name, p=payload: sinks.broadcaster.broadcast(n, p),
            )
        return failures


def _deliver(kind: str, event: str | None, ref, send: Callable[[], None]) -> int:
    try:
        send()
        return 0
    except Exception:
        db.session.rollback()
        current_app.logger.exception(
            "Best-effort %s delivery failed (event=%s ref=%s)", kind, event, ref,
            extra={"sink": kind, "sink_event": event, "sink_ref": ref},
        )
        return 1


# =============================================================================
# Per-user notification inbox
# =============================================================================

def list_user_notifications(user_id: int, *, unread_only: bool = False, limit: int = 50) -> list[Notification]:
    query = db.session.query(Notification).filter(Notification.user_id == user_id)
    if unread_only:
        query = query.filter(Notification.is_read.is_(False))
    return query.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit).all()


def mark_notification_read(user_id: int, notification_id: int) -> Notification:
    notification = db.session.get(Notification, notification_id)
    if not notification or notification.user_id != user_id:
        raise NotFound("Notification", notification_id)
    if not notification.is_read:
        notification.is_read = True
        notification.read_at = utcnow()
        db.session.commit()
    return notification
