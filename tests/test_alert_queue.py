"""Uyarı kuyruğu ve onay durum makinesi unit testleri."""

import threading
from datetime import date, datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import EndpointConnectionError

from restock_engine.engine.alert_queue import AlertQueue
from restock_engine.engine.ledger import recompute_derived_fields
from restock_engine.errors import (
    DuplicateAlertError,
    InvalidTransitionError,
    NotificationDeliveryError,
    ValidationError,
)
from restock_engine.models.inventory import (
    AlertPriority,
    AlertStatus,
    AlertType,
    InventoryRecord,
    NotificationOutcome,
    StoreLocation,
)
from restock_engine.notifications import (
    LoggingNotificationSender,
    NotificationSender,
    SnsNotificationSender,
)
from restock_engine.persistence.memory import InMemoryRepository

TODAY = date(2025, 3, 10)
NOW = datetime(2025, 3, 10, 9, 0, tzinfo=timezone.utc)


def _create_queue(sender=None, location=None, **kwargs) -> AlertQueue:
    repository = InMemoryRepository()
    repository.save_location(location or StoreLocation(
        location_id="STORE01",
        name="Kadikoy Store",
        contact_person="Ayse",
        phone="+905551112233",
    ))
    return AlertQueue(
        repository,
        sender or LoggingNotificationSender(),
        business_name="Head Office",
        today_provider=lambda: TODAY,
        clock=lambda: NOW,
        **kwargs,
    )


def _create_record(**overrides) -> InventoryRecord:
    data = {
        "product_id": "PRD001",
        "location_id": "STORE01",
        "current_stock": 10,
        "minimum_stock": 30,
        "maximum_stock": 50,
        "last_restock_date": date(2025, 3, 1),
    }
    data.update(overrides)
    return recompute_derived_fields(InventoryRecord(**data), TODAY)


def _failing_sender(error="provider down") -> MagicMock:
    sender = MagicMock(spec=NotificationSender)
    sender.send.return_value = NotificationOutcome(delivered=False, error=error)
    return sender


class TestAlertGeneration:
    """Eşik aşıldığında uyarı üretimi ve mükerrer engeli."""

    def test_critical_stock_raises_urgent_alert(self):
        queue = _create_queue()
        alerts = queue.evaluate(_create_record())

        assert len(alerts) == 1
        alert = alerts[0]
        assert alert.alert_type == AlertType.CRITICAL
        assert alert.priority == AlertPriority.URGENT
        assert alert.status == AlertStatus.PENDING
        assert alert.recipient_contact == "+905551112233"
        assert "CRITICALLY LOW: 10/30 units (33% of min)" in alert.message
        assert alert.message.startswith("Hi Ayse")
        assert alert.context_snapshot["current_stock"] == 10

    def test_low_stock_priority(self):
        queue = _create_queue()
        alerts = queue.evaluate(_create_record(current_stock=25))
        assert [a.alert_type for a in alerts] == [AlertType.LOW_STOCK]
        assert alerts[0].priority == AlertPriority.HIGH

    def test_overdue_and_upcoming(self):
        queue = _create_queue()
        overdue = queue.evaluate(_create_record(current_stock=40, location_id="STORE01",
                                                last_restock_date=TODAY - timedelta(days=25)))
        assert [a.alert_type for a in overdue] == [AlertType.OVERDUE]
        assert overdue[0].priority == AlertPriority.HIGH
        assert "overdue by 4 days" in overdue[0].message

        upcoming = queue.evaluate(_create_record(current_stock=40, product_id="PRD002",
                                                 last_restock_date=TODAY - timedelta(days=19)))
        assert [a.alert_type for a in upcoming] == [AlertType.UPCOMING_RESTOCK]
        assert upcoming[0].priority == AlertPriority.NORMAL

    def test_healthy_record_raises_nothing(self):
        queue = _create_queue()
        assert queue.evaluate(_create_record(current_stock=40)) == []

    def test_overstocked_overdue_record_raises_nothing(self):
        queue = _create_queue()
        record = _create_record(current_stock=80, last_restock_date=date(2025, 1, 1))
        assert record.needs_restock is False
        assert queue.evaluate(record) == []

    def test_overstocked_upcoming_record_raises_nothing(self):
        queue = _create_queue()
        record = _create_record(current_stock=80, last_restock_date=TODAY - timedelta(days=19))
        assert queue.evaluate(record) == []

    def test_duplicate_open_alert_suppressed(self):
        queue = _create_queue()
        record = _create_record()
        queue.evaluate(record)
        assert queue.evaluate(record) == []
        assert len(queue.list_open_alerts()) == 1

        with pytest.raises(DuplicateAlertError):
            queue.raise_alert(record, AlertType.CRITICAL)

    def test_new_alert_allowed_after_rejection(self):
        queue = _create_queue()
        record = _create_record()
        first = queue.evaluate(record)[0]
        queue.reject(first.alert_id, "Already handled by phone")

        second = queue.evaluate(record)
        assert len(second) == 1
        assert second[0].alert_id != first.alert_id

    def test_concurrent_evaluation_creates_single_alert(self):
        queue = _create_queue()
        record = _create_record()
        threads = [threading.Thread(target=queue.evaluate, args=(record,)) for _ in range(20)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert len(queue.list_open_alerts()) == 1

    def test_emergency_request(self):
        queue = _create_queue()
        alert = queue.raise_emergency_request(_create_record(current_stock=40))
        assert alert.alert_type == AlertType.EMERGENCY_REQUEST
        assert alert.priority == AlertPriority.URGENT
        assert alert.message.startswith("URGENT: Kadikoy Store")

    def test_emergency_request_disabled_for_location(self):
        location = StoreLocation(location_id="STORE01", name="Kadikoy Store", emergency_restock_enabled=False)
        queue = _create_queue(location=location)
        with pytest.raises(ValidationError):
            queue.raise_emergency_request(_create_record())


class TestApproval:
    """Onay sonrası bildirim gönderimi: başarı sent, hata failed."""

    def test_approve_sends_notification(self):
        sender = LoggingNotificationSender()
        queue = _create_queue(sender)
        alert = queue.evaluate(_create_record())[0]

        result = queue.approve(alert.alert_id, approved_by="manager")

        assert result.status == AlertStatus.SENT
        assert result.approved_by == "manager"
        assert result.sent_at is not None
        assert result.provider_reference.startswith("log-")
        assert sender.sent == [("+905551112233", alert.message)]
        assert queue.get_alert(alert.alert_id).status == AlertStatus.SENT

    def test_delivery_failure_is_bounded(self):
        sender = _failing_sender()
        queue = _create_queue(sender, max_send_attempts=3)
        alert = queue.evaluate(_create_record())[0]

        result = queue.approve(alert.alert_id)

        assert result.status == AlertStatus.FAILED
        assert result.send_attempts == 3
        assert result.provider_error == "provider down"
        assert sender.send.call_count == 3

    def test_sender_exception_marks_failed(self):
        sender = MagicMock(spec=NotificationSender)
        sender.send.side_effect = NotificationDeliveryError("timeout")
        queue = _create_queue(sender, max_send_attempts=2)
        alert = queue.evaluate(_create_record())[0]

        result = queue.approve(alert.alert_id)
        assert result.status == AlertStatus.FAILED
        assert result.provider_error == "timeout"

    def test_missing_contact_fails_without_retries(self):
        location = StoreLocation(location_id="STORE01", name="Kadikoy Store")
        sender = LoggingNotificationSender()
        queue = _create_queue(sender, location=location)
        alert = queue.evaluate(_create_record())[0]

        result = queue.approve(alert.alert_id)
        assert result.status == AlertStatus.FAILED
        assert result.send_attempts == 1
        assert sender.sent == []

    def test_retry_failed_alert(self):
        sender = _failing_sender()
        queue = _create_queue(sender)
        alert = queue.evaluate(_create_record())[0]
        queue.approve(alert.alert_id)

        sender.send.return_value = NotificationOutcome(delivered=True, provider_reference="msg-1")
        result = queue.retry(alert.alert_id)

        assert result.status == AlertStatus.SENT
        assert result.provider_reference == "msg-1"
        assert result.provider_error is None

    def test_retry_only_from_failed(self):
        queue = _create_queue()
        alert = queue.evaluate(_create_record())[0]
        with pytest.raises(InvalidTransitionError):
            queue.retry(alert.alert_id)

    def test_failed_alert_does_not_block_new_alert(self):
        queue = _create_queue(_failing_sender())
        record = _create_record()
        alert = queue.evaluate(record)[0]
        assert queue.approve(alert.alert_id).status == AlertStatus.FAILED

        again = queue.evaluate(_create_record(current_stock=5))

        assert [a.alert_type for a in again] == [AlertType.CRITICAL]
        assert again[0].alert_id != alert.alert_id
        assert queue.get_alert(alert.alert_id).status == AlertStatus.FAILED

    def test_unexpected_sender_exception_marks_failed(self):
        sender = MagicMock(spec=NotificationSender)
        sender.send.side_effect = RuntimeError("socket closed")
        queue = _create_queue(sender, max_send_attempts=2)
        alert = queue.evaluate(_create_record())[0]

        result = queue.approve(alert.alert_id)

        assert result.status == AlertStatus.FAILED
        assert result.send_attempts == 2
        assert result.provider_error == "RuntimeError: socket closed"
        assert queue.get_alert(alert.alert_id).status == AlertStatus.FAILED

    def test_sns_connection_error_allows_retry(self):
        sns = MagicMock()
        sns.publish.side_effect = EndpointConnectionError(endpoint_url="https://sns.us-west-2.amazonaws.com")
        queue = _create_queue(SnsNotificationSender(sns_client=sns), max_send_attempts=2)
        alert = queue.evaluate(_create_record())[0]

        result = queue.approve(alert.alert_id)
        assert result.status == AlertStatus.FAILED
        assert result.provider_error.startswith("EndpointConnectionError")
        assert sns.publish.call_count == 2

        sns.publish.side_effect = None
        sns.publish.return_value = {"MessageId": "msg-9"}
        retried = queue.retry(alert.alert_id)
        assert retried.status == AlertStatus.SENT
        assert retried.provider_reference == "msg-9"

    def test_bulk_approve_isolates_failures(self):
        queue = _create_queue()
        first = queue.evaluate(_create_record())[0]
        second = queue.evaluate(_create_record(product_id="PRD002"))[0]
        queue.reject(second.alert_id, "Not needed")

        results = queue.bulk_approve([first.alert_id, second.alert_id, "missing"])

        assert [r.success for r in results] == [True, False, False]
        assert results[0].status == AlertStatus.SENT


class TestTransitions:
    """İzin verilmeyen geçişler InvalidTransitionError fırlatır."""

    def test_reject_sent_alert(self):
        queue = _create_queue()
        alert = queue.evaluate(_create_record())[0]
        queue.approve(alert.alert_id)
        with pytest.raises(InvalidTransitionError):
            queue.reject(alert.alert_id, "Too late")

    def test_reject_requires_reason(self):
        queue = _create_queue()
        alert = queue.evaluate(_create_record())[0]
        with pytest.raises(ValidationError):
            queue.reject(alert.alert_id, "   ")

    def test_reject_records_reason(self):
        queue = _create_queue()
        alert = queue.evaluate(_create_record())[0]
        result = queue.reject(alert.alert_id, " Supplier already notified ")
        assert result.status == AlertStatus.REJECTED
        assert result.rejection_reason == "Supplier already notified"

    def test_approve_rejected_alert(self):
        queue = _create_queue()
        alert = queue.evaluate(_create_record())[0]
        queue.reject(alert.alert_id, "No")
        with pytest.raises(InvalidTransitionError):
            queue.approve(alert.alert_id)

    def test_cancel_before_approval(self):
        queue = _create_queue()
        alert = queue.evaluate(_create_record())[0]
        assert queue.cancel(alert.alert_id).status == AlertStatus.CANCELLED
        assert queue.list_open_alerts() == []

    def test_cancel_after_send(self):
        queue = _create_queue()
        alert = queue.evaluate(_create_record())[0]
        queue.approve(alert.alert_id)
        with pytest.raises(InvalidTransitionError):
            queue.cancel(alert.alert_id)

    def test_edit_message_only_before_approval(self):
        queue = _create_queue()
        alert = queue.evaluate(_create_record())[0]
        assert queue.edit_message(alert.alert_id, "Call me").message == "Call me"
        queue.approve(alert.alert_id)
        with pytest.raises(InvalidTransitionError):
            queue.edit_message(alert.alert_id, "Too late")


class TestScheduling:
    """Planlı uyarılar zamanı gelince onaya geri döner."""

    def test_schedule_and_release(self):
        queue = _create_queue()
        alert = queue.evaluate(_create_record())[0]
        scheduled = queue.schedule(alert.alert_id, NOW + timedelta(hours=2))
        assert scheduled.status == AlertStatus.SCHEDULED

        assert queue.release_due(now=NOW) == []
        released = queue.release_due(now=NOW + timedelta(hours=3))

        assert [a.alert_id for a in released] == [alert.alert_id]
        assert queue.get_alert(alert.alert_id).status == AlertStatus.PENDING

    def test_release_with_auto_approve(self):
        sender = LoggingNotificationSender()
        queue = _create_queue(sender)
        alert = queue.evaluate(_create_record())[0]
        queue.schedule(alert.alert_id, NOW - timedelta(minutes=1))

        released = queue.release_due(auto_approve=True)

        assert released[0].status == AlertStatus.SENT
        assert released[0].approved_by == "scheduler"
        assert len(sender.sent) == 1

    def test_naive_send_time_treated_as_utc(self):
        queue = _create_queue()
        alert = queue.evaluate(_create_record())[0]
        result = queue.schedule(alert.alert_id, datetime(2025, 3, 11, 8, 0))
        assert result.scheduled_send_at.tzinfo == timezone.utc

    def test_schedule_requires_pending(self):
        queue = _create_queue()
        alert = queue.evaluate(_create_record())[0]
        queue.schedule(alert.alert_id, NOW + timedelta(hours=1))
        with pytest.raises(InvalidTransitionError):
            queue.schedule(alert.alert_id, NOW + timedelta(hours=2))

    def test_scheduled_alert_can_be_cancelled(self):
        queue = _create_queue()
        alert = queue.evaluate(_create_record())[0]
        queue.schedule(alert.alert_id, NOW + timedelta(hours=1))
        queue.cancel(alert.alert_id)
        assert queue.release_due(now=NOW + timedelta(hours=2)) == []


class TestListing:
    """Açık uyarılar önceliğe göre sıralanır ve filtrelenir."""

    def test_sorted_by_priority(self):
        queue = _create_queue()
        queue.evaluate(_create_record(product_id="PRD002", current_stock=25))
        queue.evaluate(_create_record(product_id="PRD001", current_stock=5))

        alerts = queue.list_open_alerts()
        assert [a.priority for a in alerts] == [AlertPriority.URGENT, AlertPriority.HIGH]

    def test_filters(self):
        queue = _create_queue()
        queue.evaluate(_create_record(product_id="PRD002", current_stock=25))
        queue.evaluate(_create_record(product_id="PRD001", current_stock=5))

        assert len(queue.list_open_alerts(product_id="PRD002")) == 1
        assert len(queue.list_open_alerts(alert_type="critical")) == 1
        assert len(queue.list_open_alerts(priority=AlertPriority.HIGH)) == 1

    def test_invalid_filter(self):
        queue = _create_queue()
        with pytest.raises(ValidationError):
            queue.list_open_alerts(alert_type="bogus")
