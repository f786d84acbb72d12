"""Uyarı Üretici ve Onay Kuyruğu.

Durum makinesi:
    pending   -> approved | rejected | scheduled | cancelled
    scheduled -> pending (gönderim zamanı gelince) | approved | rejected | cancelled
    approved  -> sent | failed
    failed    -> approved (yeniden deneme)
    sent, rejected, cancelled terminaldir.

- Her stok güncellemesinden sonra kayıt değerlendirilir, eşik aşıldıysa ve
  aynı (lokasyon, ürün, tip) için açık uyarı yoksa yeni uyarı kuyruğa girer
- Onay insan tarafından verilir; onay sonrası bildirim sınırlı sayıda denenir
- Teslim hatası onayı geri almaz, uyarı failed durumuna geçer
"""

from __future__ import annotations

import logging
import threading
import time
import uuid
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Callable, Iterable, Optional

from restock_engine.engine.scheduler import schedule as schedule_restock
from restock_engine.errors import (
    DuplicateAlertError,
    InvalidTransitionError,
    NotFoundError,
    NotificationDeliveryError,
    RestockEngineError,
    ValidationError,
)
from restock_engine.models.inventory import (
    DEFAULT_POLICY,
    OPEN_ALERT_STATUSES,
    AlertPriority,
    AlertRecord,
    AlertStatus,
    AlertType,
    InventoryRecord,
    RestockPolicy,
    RestockUrgency,
    StockStatus,
    StoreLocation,
    utcnow_iso,
)
from restock_engine.notifications import NotificationSender
from restock_engine.persistence.base import Repository

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: dict[AlertStatus, frozenset[AlertStatus]] = {
    AlertStatus.PENDING: frozenset({
        AlertStatus.APPROVED, AlertStatus.REJECTED, AlertStatus.SCHEDULED, AlertStatus.CANCELLED,
    }),
    AlertStatus.SCHEDULED: frozenset({
        AlertStatus.PENDING, AlertStatus.APPROVED, AlertStatus.REJECTED, AlertStatus.CANCELLED,
    }),
    AlertStatus.APPROVED: frozenset({AlertStatus.SENT, AlertStatus.FAILED}),
    AlertStatus.FAILED: frozenset({AlertStatus.APPROVED}),
    AlertStatus.SENT: frozenset(),
    AlertStatus.REJECTED: frozenset(),
    AlertStatus.CANCELLED: frozenset(),
}

PRIORITY_BY_TYPE: dict[AlertType, AlertPriority] = {
    AlertType.CRITICAL: AlertPriority.URGENT,
    AlertType.LOW_STOCK: AlertPriority.HIGH,
    AlertType.OVERDUE: AlertPriority.HIGH,
    AlertType.UPCOMING_RESTOCK: AlertPriority.NORMAL,
    AlertType.EMERGENCY_REQUEST: AlertPriority.URGENT,
}

PRIORITY_ORDER = {
    AlertPriority.URGENT: 0,
    AlertPriority.HIGH: 1,
    AlertPriority.NORMAL: 2,
    AlertPriority.LOW: 3,
}


@dataclass(frozen=True)
class BulkApprovalResult:
    alert_id: str
    success: bool
    status: Optional[AlertStatus] = None
    error: Optional[str] = None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AlertQueue:
    """Uyarı kuyruğu ve onay durum makinesi."""

    def __init__(
        self,
        repository: Repository,
        sender: NotificationSender,
        policy: RestockPolicy = DEFAULT_POLICY,
        max_send_attempts: int = 3,
        retry_delay_seconds: float = 0.0,
        business_name: str = "Head Office",
        today_provider: Callable[[], date] = date.today,
        clock: Callable[[], datetime] = _utcnow,
    ):
        if max_send_attempts < 1:
            raise ValidationError("max_send_attempts en az 1 olmalı")
        self.repository = repository
        self.sender = sender
        self.policy = policy
        self.max_send_attempts = max_send_attempts
        self.retry_delay_seconds = retry_delay_seconds
        self.business_name = business_name
        self._today = today_provider
        self._clock = clock
        # Açık uyarı kontrolü + kayıt aynı kritik bölgede
        self._lock = threading.RLock()

    # --- Uyarı üretimi ---

    def candidate_alert_types(self, record: InventoryRecord) -> list[AlertType]:
        """Kaydın güncel durumundan doğan uyarı tiplerini döndürür.

        Overdue yalnızca kayıt restock gerektiriyorsa üretilir; fazla stoklu
        kayıt için tarih bazlı uyarı çıkmaz.
        """
        if not record.is_active or record.stock_status == StockStatus.OVERSTOCKED:
            return []

        types: list[AlertType] = []
        if record.stock_status == StockStatus.CRITICAL:
            types.append(AlertType.CRITICAL)
        elif record.stock_status == StockStatus.LOW:
            types.append(AlertType.LOW_STOCK)

        urgency = schedule_restock(record, self._today(), self.policy).restock_urgency
        if urgency == RestockUrgency.OVERDUE and record.needs_restock:
            types.append(AlertType.OVERDUE)
        elif urgency == RestockUrgency.UPCOMING:
            types.append(AlertType.UPCOMING_RESTOCK)
        return types

    def evaluate(
        self, record: InventoryRecord, location: Optional[StoreLocation] = None
    ) -> list[AlertRecord]:
        """Kaydı değerlendirir, gerekli uyarıları oluşturur. Mükerrerler sessizce atlanır."""
        if location is None:
            location = self.repository.get_location(record.location_id)

        created = []
        for alert_type in self.candidate_alert_types(record):
            try:
                created.append(self.raise_alert(record, alert_type, location))
            except DuplicateAlertError as e:
                logger.debug("Mükerrer uyarı atlandı: %s", e)
        return created

    def raise_alert(
        self,
        record: InventoryRecord,
        alert_type: AlertType,
        location: Optional[StoreLocation] = None,
        trigger_reason: Optional[str] = None,
        message: Optional[str] = None,
    ) -> AlertRecord:
        """Yeni uyarı oluşturur; açık aynı tip uyarı varsa DuplicateAlertError fırlatır."""
        alert_type = AlertType(alert_type)
        today = self._today()
        days_to_restock = (
            (record.next_restock_date - today).days if record.next_restock_date else None
        )
        context = {
            "current_stock": record.current_stock,
            "min_stock": record.minimum_stock,
            "max_stock": record.maximum_stock,
            "next_restock": record.next_restock_date.isoformat() if record.next_restock_date else None,
            "days_overdue": max(-days_to_restock, 0) if days_to_restock is not None else 0,
            "stock_status": record.stock_status.value,
        }

        alert = AlertRecord(
            alert_id=str(uuid.uuid4()),
            location_id=record.location_id,
            product_id=record.product_id,
            alert_type=alert_type,
            priority=PRIORITY_BY_TYPE[alert_type],
            message=message or render_message(alert_type, record, location, self.business_name, today),
            trigger_reason=trigger_reason or describe_trigger(alert_type, record, today, self.policy),
            context_snapshot=context,
            recipient_name=location.contact_person if location else None,
            recipient_contact=location.recipient_contact() if location else None,
        )

        with self._lock:
            existing = self._find_open(record.location_id, record.product_id, alert_type)
            if existing is not None:
                raise DuplicateAlertError(
                    record.location_id, record.product_id, alert_type.value, existing.alert_id
                )
            self.repository.save_alert(alert)

        logger.info(
            "Uyarı oluşturuldu: %s %s/%s öncelik=%s",
            alert_type.value, record.location_id, record.product_id, alert.priority.value,
        )
        return alert

    def raise_emergency_request(
        self,
        record: InventoryRecord,
        location: Optional[StoreLocation] = None,
        reason: str = "Emergency restock requested by store manager",
    ) -> AlertRecord:
        """Mağaza kaynaklı acil restock talebi."""
        if location is None:
            location = self.repository.get_location(record.location_id)
        if location is not None and not location.emergency_restock_enabled:
            raise ValidationError(f"Lokasyon için acil restock kapalı: {record.location_id}")
        return self.raise_alert(
            record, AlertType.EMERGENCY_REQUEST, location, trigger_reason=reason
        )

    def _find_open(self, location_id: str, product_id: str, alert_type: AlertType) -> Optional[AlertRecord]:
        for alert in self.repository.list_alerts(
            location_id=location_id, product_id=product_id, statuses=OPEN_ALERT_STATUSES
        ):
            if alert.alert_type == alert_type:
                return alert
        return None

    # --- Durum geçişleri ---

    def get_alert(self, alert_id: str) -> AlertRecord:
        alert = self.repository.get_alert(alert_id)
        if alert is None:
            raise NotFoundError(f"Uyarı bulunamadı: {alert_id}")
        return alert

    def _transition(self, alert: AlertRecord, target: AlertStatus) -> AlertRecord:
        if target not in ALLOWED_TRANSITIONS[alert.status]:
            raise InvalidTransitionError(alert.alert_id, alert.status.value, target.value)
        logger.debug("Uyarı durumu: %s %s -> %s", alert.alert_id, alert.status.value, target.value)
        alert.status = target
        alert.updated_at = utcnow_iso()
        return alert

    def approve(self, alert_id: str, approved_by: str = "system") -> AlertRecord:
        """pending/scheduled/failed -> approved, ardından bildirimi gönderir.

        Teslim hatası fırlatılmaz; uyarı failed durumunda döner.
        """
        with self._lock:
            alert = self.get_alert(alert_id)
            self._transition(alert, AlertStatus.APPROVED)
            alert.approved_at = utcnow_iso()
            alert.approved_by = approved_by
            self.repository.save_alert(alert)

        logger.info("Uyarı onaylandı: %s (%s)", alert_id, approved_by)
        return self._deliver(alert)

    def _deliver(self, alert: AlertRecord) -> AlertRecord:
        """Bildirimi sınırlı sayıda dener; kilit dışında çalışır."""
        last_error: Optional[str] = None
        outcome = None

        for attempt in range(1, self.max_send_attempts + 1):
            alert.send_attempts += 1
            try:
                if not alert.recipient_contact:
                    raise NotificationDeliveryError("Alıcı iletişim bilgisi yok")
                outcome = self.sender.send(alert.recipient_contact, alert.message)
                if outcome.delivered:
                    break
                last_error = outcome.error or "Sağlayıcı teslimi reddetti"
            except NotificationDeliveryError as e:
                last_error = str(e)
                if not alert.recipient_contact:
                    break
            except Exception as e:
                # Sağlayıcı/taşıma hatası da başarısız deneme sayılır, onaylayana fırlatılmaz
                logger.exception("Bildirim göndericisi hata fırlattı: %s", alert.alert_id)
                last_error = f"{type(e).__name__}: {e}"

            logger.warning(
                "Bildirim denemesi başarısız (%d/%d): %s: %s",
                attempt, self.max_send_attempts, alert.alert_id, last_error,
            )
            if attempt < self.max_send_attempts and self.retry_delay_seconds > 0:
                time.sleep(self.retry_delay_seconds)

        with self._lock:
            if outcome is not None and outcome.delivered:
                self._transition(alert, AlertStatus.SENT)
                alert.sent_at = utcnow_iso()
                alert.provider_reference = outcome.provider_reference
                alert.provider_error = None
                logger.info("Bildirim gönderildi: %s -> %s", alert.alert_id, alert.recipient_contact)
            else:
                self._transition(alert, AlertStatus.FAILED)
                alert.provider_error = last_error
                logger.warning("Bildirim gönderilemedi: %s: %s", alert.alert_id, last_error)
            self.repository.save_alert(alert)
        return alert

    def reject(self, alert_id: str, reason: str, rejected_by: Optional[str] = None) -> AlertRecord:
        if not reason or not reason.strip():
            raise ValidationError("Red gerekçesi boş olamaz")
        with self._lock:
            alert = self.get_alert(alert_id)
            self._transition(alert, AlertStatus.REJECTED)
            alert.rejection_reason = reason.strip()
            self.repository.save_alert(alert)
        logger.info("Uyarı reddedildi: %s (%s) %s", alert_id, rejected_by or "-", reason)
        return alert

    def schedule(self, alert_id: str, send_at: datetime) -> AlertRecord:
        """pending -> scheduled; send_at geldiğinde release_due ile onaya geri döner."""
        if send_at.tzinfo is None:
            send_at = send_at.replace(tzinfo=timezone.utc)
        with self._lock:
            alert = self.get_alert(alert_id)
            if alert.status != AlertStatus.PENDING:
                raise InvalidTransitionError(alert_id, alert.status.value, AlertStatus.SCHEDULED.value)
            self._transition(alert, AlertStatus.SCHEDULED)
            alert.scheduled_send_at = send_at
            self.repository.save_alert(alert)
        logger.info("Uyarı zamanlandı: %s -> %s", alert_id, send_at.isoformat())
        return alert

    def release_due(
        self,
        now: Optional[datetime] = None,
        auto_approve: bool = False,
        approved_by: str = "scheduler",
    ) -> list[AlertRecord]:
        """Zamanı gelen planlı uyarıları pending'e döndürür ya da politika gereği onaylar."""
        now = now or self._clock()
        released = []
        for alert in self.repository.list_alerts(statuses=[AlertStatus.SCHEDULED]):
            send_at = alert.scheduled_send_at
            if send_at is None:
                continue
            if send_at.tzinfo is None:
                send_at = send_at.replace(tzinfo=timezone.utc)
            if send_at > now:
                continue
            try:
                if auto_approve:
                    released.append(self.approve(alert.alert_id, approved_by=approved_by))
                else:
                    with self._lock:
                        current = self.get_alert(alert.alert_id)
                        self._transition(current, AlertStatus.PENDING)
                        self.repository.save_alert(current)
                    released.append(current)
            except InvalidTransitionError as e:
                # Bu arada iptal edilmiş ya da onaylanmış olabilir
                logger.debug("Planlı uyarı atlandı: %s", e)
        return released

    def cancel(self, alert_id: str) -> AlertRecord:
        """Onaydan önce (pending/scheduled) uyarıyı iptal eder."""
        with self._lock:
            alert = self.get_alert(alert_id)
            self._transition(alert, AlertStatus.CANCELLED)
            self.repository.save_alert(alert)
        logger.info("Uyarı iptal edildi: %s", alert_id)
        return alert

    def retry(self, alert_id: str, approved_by: str = "system") -> AlertRecord:
        """failed -> approved ve yeniden gönderim."""
        alert = self.get_alert(alert_id)
        if alert.status != AlertStatus.FAILED:
            raise InvalidTransitionError(alert_id, alert.status.value, AlertStatus.APPROVED.value)
        return self.approve(alert_id, approved_by=approved_by)

    def edit_message(self, alert_id: str, message: str) -> AlertRecord:
        if not message or not message.strip():
            raise ValidationError("Mesaj boş olamaz")
        with self._lock:
            alert = self.get_alert(alert_id)
            if alert.status not in (AlertStatus.PENDING, AlertStatus.SCHEDULED):
                raise InvalidTransitionError(alert_id, alert.status.value, "edited")
            alert.message = message.strip()
            alert.updated_at = utcnow_iso()
            self.repository.save_alert(alert)
        return alert

    def bulk_approve(self, alert_ids: Iterable[str], approved_by: str = "system") -> list[BulkApprovalResult]:
        """Her uyarıyı bağımsız onaylar; birinin hatası diğerlerini durdurmaz."""
        results = []
        for alert_id in alert_ids:
            try:
                alert = self.approve(alert_id, approved_by=approved_by)
                results.append(BulkApprovalResult(alert_id, True, alert.status))
            except RestockEngineError as e:
                logger.warning("Toplu onay başarısız: %s: %s", alert_id, e)
                results.append(BulkApprovalResult(alert_id, False, error=str(e)))
        return results

    # --- Sorgular ---

    def list_open_alerts(
        self,
        location_id: Optional[str] = None,
        product_id: Optional[str] = None,
        alert_type: Optional[AlertType] = None,
        priority: Optional[AlertPriority] = None,
        statuses: Optional[Iterable[AlertStatus]] = None,
    ) -> list[AlertRecord]:
        """Açık uyarıları önceliğe, sonra oluşturulma zamanına göre sıralı döndürür."""
        try:
            wanted = OPEN_ALERT_STATUSES if statuses is None else frozenset(AlertStatus(s) for s in statuses)
            alert_type = AlertType(alert_type) if alert_type is not None else None
            priority = AlertPriority(priority) if priority is not None else None
        except ValueError as e:
            raise ValidationError(f"Geçersiz filtre: {e}") from e

        alerts = self.repository.list_alerts(
            location_id=location_id, product_id=product_id, statuses=wanted
        )
        if alert_type is not None:
            alerts = [a for a in alerts if a.alert_type == alert_type]
        if priority is not None:
            alerts = [a for a in alerts if a.priority == priority]
        alerts.sort(key=lambda a: (PRIORITY_ORDER[a.priority], a.created_at))
        return alerts


def _store_name(record: InventoryRecord, location: Optional[StoreLocation]) -> str:
    return location.name if location else record.location_id


def _greeting(location: Optional[StoreLocation]) -> str:
    if location and location.contact_person:
        return f"Hi {location.contact_person}"
    return "Hi Manager"


def render_message(
    alert_type: AlertType,
    record: InventoryRecord,
    location: Optional[StoreLocation],
    business_name: str,
    today: date,
) -> str:
    """Mağaza yetkilisine gidecek SMS metnini üretir."""
    store = _store_name(record, location)
    stock = f"{record.current_stock}/{record.minimum_stock} units"
    next_date = record.next_restock_date.isoformat() if record.next_restock_date else "as soon as possible"
    signature = f" - {business_name}"

    if alert_type == AlertType.CRITICAL:
        pct = round(record.current_stock * 100 / record.minimum_stock) if record.minimum_stock else 0
        return (
            f"{_greeting(location)}, {store} stock is CRITICALLY LOW: {stock} ({pct}% of min). "
            f"Urgent restock needed by {next_date}.{signature}"
        )
    if alert_type == AlertType.LOW_STOCK:
        return f"{_greeting(location)}, {store} stock is low: {stock}. Next delivery scheduled for {next_date}.{signature}"
    if alert_type == AlertType.UPCOMING_RESTOCK:
        days = (record.next_restock_date - today).days if record.next_restock_date else 0
        return (
            f"{_greeting(location)}, {store} restock scheduled for {next_date} (in {days} days). "
            f"Current stock: {stock}. Please confirm delivery availability.{signature}"
        )
    if alert_type == AlertType.OVERDUE:
        overdue = (today - record.next_restock_date).days if record.next_restock_date else 0
        return (
            f"{_greeting(location)}, {store} restock is overdue by {overdue} days (due {next_date}). "
            f"Current stock: {stock}.{signature}"
        )
    return (
        f"URGENT: {store} requesting emergency restock. Current stock: {record.current_stock} units. "
        f"Please arrange immediate delivery.{signature}"
    )


def describe_trigger(
    alert_type: AlertType,
    record: InventoryRecord,
    today: date,
    policy: RestockPolicy = DEFAULT_POLICY,
) -> str:
    if alert_type == AlertType.CRITICAL:
        return (
            f"Stock level ({record.current_stock}) is at or below "
            f"{policy.critical_ratio:.0%} of minimum ({record.minimum_stock})"
        )
    if alert_type == AlertType.LOW_STOCK:
        return f"Stock level ({record.current_stock}) at or below minimum ({record.minimum_stock})"
    if alert_type == AlertType.UPCOMING_RESTOCK and record.next_restock_date:
        days = (record.next_restock_date - today).days
        return f"Restock scheduled in {days} days ({record.next_restock_date.isoformat()})"
    if alert_type == AlertType.OVERDUE and record.next_restock_date:
        return f"Restock overdue since {record.next_restock_date.isoformat()}"
    return "Emergency restock requested by store manager"
