"""Bildirim gönderici unit testleri."""

from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError, ReadTimeoutError

from restock_engine.errors import NotificationDeliveryError
from restock_engine.notifications import LoggingNotificationSender, SnsNotificationSender


def _create_sender(**kwargs) -> SnsNotificationSender:
    sns = MagicMock()
    sns.publish.return_value = {"MessageId": "msg-123"}
    return SnsNotificationSender(sns_client=sns, **kwargs)


class TestSnsSender:
    """SNS publish çağrıları ve hata eşlemesi."""

    def test_sms_to_phone_number(self):
        sender = _create_sender(sender_id="HEADOFFICE")
        outcome = sender.send("+90 555 111 2233", "Restock needed")

        kwargs = sender.sns.publish.call_args.kwargs
        assert kwargs["PhoneNumber"] == "+905551112233"
        assert kwargs["Message"] == "Restock needed"
        assert kwargs["MessageAttributes"]["AWS.SNS.SMS.SMSType"]["StringValue"] == "Transactional"
        assert kwargs["MessageAttributes"]["AWS.SNS.SMS.SenderID"]["StringValue"] == "HEADOFFICE"
        assert outcome.delivered is True
        assert outcome.provider_reference == "msg-123"

    def test_email_goes_to_topic(self):
        sender = _create_sender(topic_arn="arn:aws:sns:us-west-2:123456789012:stock-alerts")
        sender.send("manager@example.com", "Restock needed")

        kwargs = sender.sns.publish.call_args.kwargs
        assert kwargs["TopicArn"].endswith(":stock-alerts")
        assert "PhoneNumber" not in kwargs
        assert kwargs["MessageAttributes"]["recipient"]["StringValue"] == "manager@example.com"

    def test_email_without_topic_raises(self):
        sender = _create_sender()
        with pytest.raises(NotificationDeliveryError):
            sender.send("manager@example.com", "Restock needed")
        sender.sns.publish.assert_not_called()

    def test_client_error_is_failed_outcome(self):
        sender = _create_sender()
        sender.sns.publish.side_effect = ClientError(
            {"Error": {"Code": "InvalidParameter", "Message": "bad number"}}, "Publish"
        )
        outcome = sender.send("+905551112233", "Restock needed")

        assert outcome.delivered is False
        assert outcome.error.startswith("InvalidParameter")

    def test_transport_error_is_failed_outcome(self):
        sender = _create_sender()
        sender.sns.publish.side_effect = ReadTimeoutError(endpoint_url="https://sns.us-west-2.amazonaws.com")
        outcome = sender.send("+905551112233", "Restock needed")

        assert outcome.delivered is False
        assert outcome.error.startswith("ReadTimeoutError")


class TestLoggingSender:
    """Log gönderici her mesajı kaydeder."""

    def test_records_messages(self):
        sender = LoggingNotificationSender()
        outcome = sender.send("+905551112233", "hello")
        assert outcome.delivered is True
        assert sender.sent == [("+905551112233", "hello")]
