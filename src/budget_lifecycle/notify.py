"""
Notifier bridge - outward notification triggers

Delivery itself (push, mail, in-app) belongs to an external NotificationSink.
The bridge calls the sink after a successful operation and never lets a
delivery failure escape: failures are logged and counted, and the operation
that triggered them still succeeds.
"""

from enum import Enum
from typing import Any, Protocol

from budget_lifecycle.kernel.logging import get_logger
from budget_lifecycle.kernel.metrics import notifications_total

logger = get_logger(__name__)


class NotificationKind(str, Enum):
    SUBMITTED = "submitted"
    APPROVED = "approved"
    REJECTED = "rejected"
    SENT_TO_MEMBERS = "sent_to_members"
    ITEM_ASSIGNED = "item_assigned"
    EXPENSE_REPORTED = "expense_reported"
    EXPENSE_SUBMITTED = "expense_submitted"


class NotificationSink(Protocol):
    """External delivery contract. Implementations may raise; the bridge absorbs it."""

    def submitted(self, event_id: str, department_id: str, plan_id: str) -> None:
        ...

    def approved(self, event_id: str, department_id: str, plan_id: str) -> None:
        ...

    def rejected(self, event_id: str, department_id: str, plan_id: str) -> None:
        ...

    def sent_to_members(self, event_id: str, department_id: str, plan_id: str) -> None:
        ...

    def item_assigned(
        self, event_id: str, department_id: str, plan_id: str, item_id: str, member_id: str
    ) -> None:
        ...

    def expense_reported(
        self, event_id: str, department_id: str, plan_id: str, item_id: str, member_id: str | None
    ) -> None:
        ...

    def expense_submitted(
        self, event_id: str, department_id: str, plan_id: str, item_id: str, member_id: str | None
    ) -> None:
        ...


class NullSink:
    """Sink that drops every notification"""

    def __getattr__(self, name: str) -> Any:
        if name in {kind.value for kind in NotificationKind}:
            return lambda *args, **kwargs: None
        raise AttributeError(name)


class LoggingSink:
    """Sink that writes each notification to the structured log"""

    def __init__(self) -> None:
        self.logger = get_logger("budget_lifecycle.notifications")

    def _log(self, kind: NotificationKind, **payload: Any) -> None:
        self.logger.info("Notification", kind=kind.value, **payload)

    def submitted(self, event_id: str, department_id: str, plan_id: str) -> None:
        self._log(NotificationKind.SUBMITTED, event_id=event_id, department_id=department_id, plan_id=plan_id)

    def approved(self, event_id: str, department_id: str, plan_id: str) -> None:
        self._log(NotificationKind.APPROVED, event_id=event_id, department_id=department_id, plan_id=plan_id)

    def rejected(self, event_id: str, department_id: str, plan_id: str) -> None:
        self._log(NotificationKind.REJECTED, event_id=event_id, department_id=department_id, plan_id=plan_id)

    def sent_to_members(self, event_id: str, department_id: str, plan_id: str) -> None:
        self._log(
            NotificationKind.SENT_TO_MEMBERS,
            event_id=event_id,
            department_id=department_id,
            plan_id=plan_id,
        )

    def item_assigned(
        self, event_id: str, department_id: str, plan_id: str, item_id: str, member_id: str
    ) -> None:
        self._log(
            NotificationKind.ITEM_ASSIGNED,
            event_id=event_id,
            department_id=department_id,
            plan_id=plan_id,
            item_id=item_id,
            member_id=member_id,
        )

    def expense_reported(
        self, event_id: str, department_id: str, plan_id: str, item_id: str, member_id: str | None
    ) -> None:
        self._log(
            NotificationKind.EXPENSE_REPORTED,
            event_id=event_id,
            department_id=department_id,
            plan_id=plan_id,
            item_id=item_id,
            member_id=member_id,
        )

    def expense_submitted(
        self, event_id: str, department_id: str, plan_id: str, item_id: str, member_id: str | None
    ) -> None:
        self._log(
            NotificationKind.EXPENSE_SUBMITTED,
            event_id=event_id,
            department_id=department_id,
            plan_id=plan_id,
            item_id=item_id,
            member_id=member_id,
        )


class RecordingSink:
    """Sink that keeps every notification in memory (tests, dry runs)"""

    def __init__(self) -> None:
        self.sent: list[tuple[str, tuple[Any, ...]]] = []

    def kinds(self) -> list[str]:
        return [kind for kind, _ in self.sent]

    def __getattr__(self, name: str) -> Any:
        if name in {kind.value for kind in NotificationKind}:
            return lambda *args: self.sent.append((name, args))
        raise AttributeError(name)


class NotifierBridge:
    """
    Best-effort dispatcher in front of a NotificationSink

    ``emit`` never raises. A failing sink is logged with full detail and
    counted in ``budget_notifications_total{status="failed"}``.
    """

    def __init__(self, sink: NotificationSink | None = None) -> None:
        self.sink = sink if sink is not None else NullSink()

    def emit(self, kind: NotificationKind, *args: Any) -> bool:
        """
        Deliver one notification

        Args:
            kind: Notification kind (selects the sink method)
            *args: Positional arguments for the sink method

        Returns:
            True if the sink accepted it, False if delivery failed
        """
        try:
            getattr(self.sink, kind.value)(*args)
        except Exception as e:
            notifications_total.labels(kind=kind.value, status="failed").inc()
            logger.error(
                "Notification delivery failed",
                kind=kind.value,
                args=[str(a) for a in args],
                error=str(e),
                exc_info=True,
            )
            return False
        notifications_total.labels(kind=kind.value, status="sent").inc()
        logger.debug("Notification sent", kind=kind.value)
        return True
