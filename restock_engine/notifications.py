"""Bildirim gönderim sınırı.

Engine yalnızca `send(recipient_contact, message) -> NotificationOutcome`
sözleşmesine bağımlıdır. SNS gönderici telefon numaralarına doğrudan SMS,
diğer adreslere (e-posta) konu üzerinden yayın yapar.
"""

from __future__ import annotations

import logging
import uuid
from abc import ABC, abstractmethod
from typing import Any, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from restock_engine.errors import NotificationDeliveryError
from restock_engine.models.inventory import NotificationOutcome

logger = logging.getLogger(__name__)


class NotificationSender(ABC):

    @abstractmethod
    def send(self, recipient_contact: str, message: str) -> NotificationOutcome:
        """Mesajı teslim eder. Sağlayıcı hatasında NotificationDeliveryError fırlatabilir."""
        ...


class LoggingNotificationSender(NotificationSender):
    """Mesajı yalnızca loglar; gerçek sağlayıcı yapılandırılmamış ortamlar için."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, str]] = []

    def send(self, recipient_contact: str, message: str) -> NotificationOutcome:
        self.sent.append((recipient_contact, message))
        logger.info("Bildirim (log): %s <- %s", recipient_contact, message)
        return NotificationOutcome(delivered=True, provider_reference=f"log-{uuid.uuid4()}")


class SnsNotificationSender(NotificationSender):
    """AWS SNS üzerinden SMS / konu yayını."""

    def __init__(
        self,
        region_name: str = "us-west-2",
        topic_arn: Optional[str] = None,
        sender_id: Optional[str] = None,
        sns_client: Optional[Any] = None,
    ):
        self.topic_arn = topic_arn
        self.sender_id = sender_id
        self.sns = sns_client or boto3.client("sns", region_name=region_name)

    @staticmethod
    def _is_phone_number(contact: str) -> bool:
        digits = contact.replace(" ", "").lstrip("+")
        return digits.isdigit()

    def send(self, recipient_contact: str, message: str) -> NotificationOutcome:
        kwargs: dict[str, Any] = {"Message": message}
        if self._is_phone_number(recipient_contact):
            kwargs["PhoneNumber"] = recipient_contact.replace(" ", "")
            kwargs["MessageAttributes"] = {
                "AWS.SNS.SMS.SMSType": {"DataType": "String", "StringValue": "Transactional"},
            }
            if self.sender_id:
                kwargs["MessageAttributes"]["AWS.SNS.SMS.SenderID"] = {
                    "DataType": "String", "StringValue": self.sender_id,
                }
        elif self.topic_arn:
            kwargs["TopicArn"] = self.topic_arn
            kwargs["Subject"] = "Stock alert"
            kwargs["MessageAttributes"] = {
                "recipient": {"DataType": "String", "StringValue": recipient_contact},
            }
        else:
            raise NotificationDeliveryError(
                f"Telefon olmayan alıcı için SNS konusu tanımlı değil: {recipient_contact}"
            )

        try:
            response = self.sns.publish(**kwargs)
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code", "Unknown")
            logger.warning("SNS gönderim hatası [%s]: %s", code, e)
            return NotificationOutcome(delivered=False, error=f"{code}: {e}")
        except BotoCoreError as e:
            logger.warning("SNS bağlantı hatası: %s", e)
            return NotificationOutcome(delivered=False, error=f"{type(e).__name__}: {e}")

        return NotificationOutcome(delivered=True, provider_reference=response.get("MessageId"))
