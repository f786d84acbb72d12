"""InventoryService - sunum/API katmanının çağırdığı işlemler.

Ledger, uyarı kuyruğu ve hub hesaplayıcıyı tek bir cephede toplar. Ledger'daki
her kayıt güncellemesi uyarı kuyruğuna dinleyici olarak bağlanır.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Callable, Iterable, Optional, Union

from restock_engine.config import Settings
from restock_engine.engine import hub_economics
from restock_engine.engine.alert_queue import AlertQueue, BulkApprovalResult
from restock_engine.engine.ledger import MovementResult, StockLedger
from restock_engine.engine.locking import KeyedLock
from restock_engine.engine.pricing import profit_per_unit
from restock_engine.engine.scheduler import schedule, suggest_restock
from restock_engine.errors import NotFoundError, ValidationError
from restock_engine.models.hub import HubEconomicsResult, HubScenario, ViabilityCriteria
from restock_engine.models.inventory import (
    AlertPriority,
    AlertRecord,
    AlertType,
    DecisionRecord,
    InventoryRecord,
    RestockSuggestion,
    RestockUrgency,
    StockMovement,
    StockStatus,
    StoreLocation,
)
from restock_engine.notifications import (
    LoggingNotificationSender,
    NotificationSender,
    SnsNotificationSender,
)
from restock_engine.persistence.base import Repository
from restock_engine.persistence.dynamodb import DynamoDBRepository

logger = logging.getLogger(__name__)

SUGGESTION_URGENCY_ORDER = {"critical": 0, "high": 1, "medium": 2, "low": 3}


@dataclass(frozen=True)
class InventoryStatus:
    """Bir stok kaydının bugüne göre hesaplanmış görünümü."""

    record: InventoryRecord
    days_until_next_restock: Optional[int]
    restock_urgency: RestockUrgency
    suggestion: RestockSuggestion

    def to_dict(self) -> dict:
        data = self.record.to_dict()
        data.update(
            days_until_next_restock=self.days_until_next_restock,
            restock_urgency=self.restock_urgency.value,
            suggested_restock_qty=self.suggestion.suggested_quantity,
            suggestion_reason=self.suggestion.suggestion_reason,
            suggestion_urgency=self.suggestion.urgency,
        )
        return data


class InventoryService:
    """Stok durumu, restock kararları, uyarı onayı ve hub ekonomisi işlemleri."""

    def __init__(
        self,
        repository: Repository,
        sender: Optional[NotificationSender] = None,
        settings: Optional[Settings] = None,
        today_provider: Callable[[], date] = date.today,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.settings = settings or Settings()
        self.repository = repository
        self.ledger = StockLedger(
            repository,
            policy=self.settings.policy,
            lock=KeyedLock(timeout=self.settings.lock_timeout),
            today_provider=today_provider,
        )
        queue_kwargs: dict[str, Any] = {}
        if clock is not None:
            queue_kwargs["clock"] = clock
        self.alerts = AlertQueue(
            repository,
            sender or LoggingNotificationSender(),
            policy=self.settings.policy,
            max_send_attempts=self.settings.max_send_attempts,
            retry_delay_seconds=self.settings.retry_delay_seconds,
            business_name=self.settings.business_name,
            today_provider=today_provider,
            **queue_kwargs,
        )
        # Her mutasyondan sonra uyarı değerlendirmesi aynı kritik bölgede
        self.ledger.add_listener(self.alerts.evaluate)
        self._decisions: list[DecisionRecord] = []

    @classmethod
    def from_settings(
        cls,
        settings: Optional[Settings] = None,
        dynamodb_resource: Optional[Any] = None,
        sns_client: Optional[Any] = None,
    ) -> "InventoryService":
        """DynamoDB deposu ve SNS gönderici ile üretim kurulumu."""
        settings = settings or Settings.from_env()
        repository = DynamoDBRepository(
            region_name=settings.region_name,
            table_prefix=settings.table_prefix,
            dynamodb_resource=dynamodb_resource,
        )
        sender = SnsNotificationSender(
            region_name=settings.region_name,
            topic_arn=settings.sns_topic_arn,
            sender_id=settings.sns_sender_id,
            sns_client=sns_client,
        )
        return cls(repository, sender=sender, settings=settings)

    def log_decision(
        self,
        decision_type: str,
        input_data: dict,
        output_data: dict,
        reasoning: str,
    ) -> DecisionRecord:
        decision = DecisionRecord(
            decision_id=str(uuid.uuid4()),
            component="InventoryService",
            decision_type=decision_type,
            input_data=input_data,
            output_data=output_data,
            reasoning=reasoning,
        )
        self._decisions.append(decision)
        logger.info("Karar [%s]: %s", decision_type, reasoning)
        return decision

    def get_decisions(self) -> list[DecisionRecord]:
        return list(self._decisions)

    # --- Lokasyon ve kayıt hazırlığı ---

    def register_location(self, location: StoreLocation) -> StoreLocation:
        if not location.location_id or not location.name:
            raise ValidationError("Lokasyon kimliği ve adı zorunlu")
        return self.repository.save_location(location)

    def provision_inventory(self, record: InventoryRecord) -> InventoryRecord:
        if self.repository.get_location(record.location_id) is None:
            raise NotFoundError(f"Lokasyon bulunamadı: {record.location_id}")
        return self.ledger.provision_record(record)

    # --- Stok durumu ve hareketler ---

    def get_inventory_status(self, product_id: str, location_id: str) -> InventoryStatus:
        today = self.ledger.today()
        record = self.ledger.evaluate_record(self.ledger.get_record(product_id, location_id), today)
        plan = schedule(record, today, self.settings.policy)
        return InventoryStatus(
            record=record,
            days_until_next_restock=plan.days_until_next_restock,
            restock_urgency=plan.restock_urgency,
            suggestion=suggest_restock(record, today, self.settings.policy),
        )

    def apply_movement(self, movement: StockMovement) -> MovementResult:
        result = self.ledger.apply_movement(movement)
        self.log_decision(
            decision_type="stock_movement",
            input_data={
                "movement_id": movement.movement_id,
                "movement_type": str(getattr(movement.movement_type, "value", movement.movement_type)),
                "quantity": movement.quantity,
            },
            output_data={
                r.location_id: {"current_stock": r.current_stock, "stock_status": r.stock_status.value}
                for r in result.touched_records
            },
            reasoning=(
                f"{movement.product_id} x{movement.quantity}: "
                f"{movement.from_location_id} -> {movement.to_location_id}"
            ),
        )
        return result

    def batch_update_stock(
        self,
        location_ids: list[str],
        product_id: str,
        new_stock_level: int,
        reason: str = "batch_update",
        created_by: str = "system",
    ) -> list[dict]:
        return self.ledger.batch_set_stock(location_ids, product_id, new_stock_level, reason, created_by)

    def batch_update_restock_cycle(
        self, location_ids: list[str], new_cycle_days: int, product_id: Optional[str] = None
    ) -> list[dict]:
        return self.ledger.batch_update_cycle(location_ids, new_cycle_days, product_id)

    def restock_suggestions(
        self, location_id: Optional[str] = None, product_id: Optional[str] = None
    ) -> list[RestockSuggestion]:
        """Restock gereken aktif kayıtlar için öneriler, en aciliyetli önce."""
        today = self.ledger.today()
        suggestions = []
        for record in self.repository.list_inventory(location_id=location_id, product_id=product_id):
            if not record.is_active:
                continue
            record = self.ledger.evaluate_record(record, today)
            if not record.needs_restock:
                continue
            suggestions.append(suggest_restock(record, today, self.settings.policy))
        suggestions.sort(key=lambda s: (SUGGESTION_URGENCY_ORDER[s.urgency], -s.suggested_quantity))
        return suggestions

    def dashboard_stats(
        self, product_id: Optional[str] = None, commission_rate_percent: Decimal = Decimal("0")
    ) -> dict:
        """Tüm aktif kayıtlar için özet istatistikler."""
        today = self.ledger.today()
        records = [
            self.ledger.evaluate_record(r, today)
            for r in self.repository.list_inventory(product_id=product_id)
            if r.is_active
        ]
        status_counts = {status: 0 for status in StockStatus}
        due_this_week = 0
        overdue = 0
        profit_potential = Decimal(0)

        for record in records:
            status_counts[record.stock_status] += 1
            days = schedule(record, today, self.settings.policy).days_until_next_restock
            if days is not None and days <= 0:
                overdue += 1
            elif days is not None and days <= 7:
                due_this_week += 1
            profit_potential += record.current_stock * profit_per_unit(
                record.retail_price, record.unit_cost, commission_rate_percent
            )

        return {
            "total_units": sum(r.current_stock for r in records),
            "total_value": sum((r.stock_value for r in records), Decimal(0)),
            "total_potential_revenue": sum((r.potential_revenue for r in records), Decimal(0)),
            "critical_stores": status_counts[StockStatus.CRITICAL],
            "low_stock_stores": status_counts[StockStatus.LOW],
            "healthy_stores": status_counts[StockStatus.HEALTHY],
            "overstocked_stores": status_counts[StockStatus.OVERSTOCKED],
            "restock_due_this_week": due_this_week,
            "restock_overdue": overdue,
            "average_stock_percentage": (
                round(sum(r.stock_percentage for r in records) / len(records)) if records else 0
            ),
            "total_profit_potential": profit_potential,
        }

    def run_daily_check(self, now: Optional[datetime] = None, auto_approve: bool = False) -> dict:
        """Günlük iş: tarih bazlı durumları tazeler ve zamanı gelen uyarıları serbest bırakır."""
        refreshed = 0
        for record in self.repository.list_inventory():
            if not record.is_active:
                continue
            self.ledger.refresh_record(record.product_id, record.location_id)
            refreshed += 1
        released = self.alerts.release_due(now=now, auto_approve=auto_approve)
        summary = {
            "records_refreshed": refreshed,
            "alerts_released": len(released),
            "open_alerts": len(self.alerts.list_open_alerts()),
        }
        self.log_decision(
            decision_type="daily_check",
            input_data={"auto_approve": auto_approve},
            output_data=summary,
            reasoning=f"{refreshed} kayıt tazelendi, {len(released)} planlı uyarı serbest bırakıldı",
        )
        return summary

    # --- Uyarı kuyruğu ---

    def list_open_alerts(
        self,
        location_id: Optional[str] = None,
        product_id: Optional[str] = None,
        alert_type: Optional[AlertType] = None,
        priority: Optional[AlertPriority] = None,
    ) -> list[AlertRecord]:
        return self.alerts.list_open_alerts(
            location_id=location_id, product_id=product_id, alert_type=alert_type, priority=priority
        )

    def approve_alert(self, alert_id: str, approved_by: str = "system") -> AlertRecord:
        alert = self.alerts.approve(alert_id, approved_by=approved_by)
        self.log_decision(
            decision_type="alert_approved",
            input_data={"alert_id": alert_id, "approved_by": approved_by},
            output_data={"status": alert.status.value, "attempts": alert.send_attempts},
            reasoning=f"Uyarı onaylandı, teslim durumu: {alert.status.value}",
        )
        return alert

    def reject_alert(self, alert_id: str, reason: str, rejected_by: Optional[str] = None) -> AlertRecord:
        return self.alerts.reject(alert_id, reason, rejected_by=rejected_by)

    def schedule_alert(self, alert_id: str, when: datetime) -> AlertRecord:
        return self.alerts.schedule(alert_id, when)

    def cancel_alert(self, alert_id: str) -> AlertRecord:
        return self.alerts.cancel(alert_id)

    def retry_alert(self, alert_id: str, approved_by: str = "system") -> AlertRecord:
        return self.alerts.retry(alert_id, approved_by=approved_by)

    def edit_alert_message(self, alert_id: str, message: str) -> AlertRecord:
        return self.alerts.edit_message(alert_id, message)

    def bulk_approve_alerts(
        self, alert_ids: Iterable[str], approved_by: str = "system"
    ) -> list[BulkApprovalResult]:
        return self.alerts.bulk_approve(alert_ids, approved_by=approved_by)

    def release_scheduled_alerts(
        self, now: Optional[datetime] = None, auto_approve: bool = False
    ) -> list[AlertRecord]:
        return self.alerts.release_due(now=now, auto_approve=auto_approve)

    def request_emergency_restock(
        self, product_id: str, location_id: str, reason: Optional[str] = None
    ) -> AlertRecord:
        record = self.ledger.get_record(product_id, location_id)
        if reason:
            return self.alerts.raise_emergency_request(record, reason=reason)
        return self.alerts.raise_emergency_request(record)

    # --- Hub ekonomisi ---

    def evaluate_hub_scenario(
        self,
        scenario_input: Union[HubScenario, dict],
        criteria: Optional[ViabilityCriteria] = None,
    ) -> HubEconomicsResult:
        if isinstance(scenario_input, dict):
            data = dict(scenario_input)
            data.setdefault("bulk_shipments_per_month", self.settings.bulk_shipments_per_month)
            scenario = HubScenario.from_dict(data)
        else:
            scenario = scenario_input
        if criteria is None:
            return hub_economics.evaluate(scenario)
        return hub_economics.evaluate(scenario, criteria)

    def evaluate_hub_for_region(
        self,
        region: Optional[str] = None,
        criteria: Optional[ViabilityCriteria] = None,
        **overrides: Any,
    ) -> HubEconomicsResult:
        """Kayıtlı lokasyon listesinden mağaza sayısını alarak senaryoyu değerlendirir."""
        overrides.setdefault("bulk_shipments_per_month", self.settings.bulk_shipments_per_month)
        scenario = hub_economics.scenario_for_region(
            self.repository.list_locations(), region=region, **overrides
        )
        return self.evaluate_hub_scenario(scenario, criteria)
