"""DynamoDB tabanlı depo ve tablo kurulumu.

4 tablo: Inventory, StockMovements, AlertQueue, Locations
Tablo adlarının önüne ayarlardaki prefix eklenir (ör. "prod-Inventory").
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Iterable, Optional

import boto3
from boto3.dynamodb.conditions import Attr, Key
from boto3.dynamodb.types import TypeSerializer
from botocore.config import Config
from botocore.exceptions import ClientError

from restock_engine.errors import ConcurrentModificationError
from restock_engine.models.inventory import (
    AlertRecord,
    AlertStatus,
    InventoryRecord,
    StockMovement,
    StoreLocation,
)
from restock_engine.persistence.base import Repository

logger = logging.getLogger(__name__)

BOTO_CONFIG = Config(retries={"max_attempts": 3})

INVENTORY_TABLE = "Inventory"
MOVEMENTS_TABLE = "StockMovements"
ALERTS_TABLE = "AlertQueue"
LOCATIONS_TABLE = "Locations"


def table_definitions(prefix: str = "") -> list[dict]:
    return [
        {
            "TableName": f"{prefix}{INVENTORY_TABLE}",
            "KeySchema": [
                {"AttributeName": "location_id", "KeyType": "HASH"},
                {"AttributeName": "product_id", "KeyType": "RANGE"},
            ],
            "AttributeDefinitions": [
                {"AttributeName": "location_id", "AttributeType": "S"},
                {"AttributeName": "product_id", "AttributeType": "S"},
            ],
            "BillingMode": "PAY_PER_REQUEST",
        },
        {
            "TableName": f"{prefix}{MOVEMENTS_TABLE}",
            "KeySchema": [
                {"AttributeName": "movement_id", "KeyType": "HASH"},
            ],
            "AttributeDefinitions": [
                {"AttributeName": "movement_id", "AttributeType": "S"},
                {"AttributeName": "product_id", "AttributeType": "S"},
                {"AttributeName": "created_at", "AttributeType": "S"},
            ],
            "GlobalSecondaryIndexes": [
                {
                    "IndexName": "ProductTimeIndex",
                    "KeySchema": [
                        {"AttributeName": "product_id", "KeyType": "HASH"},
                        {"AttributeName": "created_at", "KeyType": "RANGE"},
                    ],
                    "Projection": {"ProjectionType": "ALL"},
                },
            ],
            "BillingMode": "PAY_PER_REQUEST",
        },
        {
            "TableName": f"{prefix}{ALERTS_TABLE}",
            "KeySchema": [
                {"AttributeName": "alert_id", "KeyType": "HASH"},
            ],
            "AttributeDefinitions": [
                {"AttributeName": "alert_id", "AttributeType": "S"},
                {"AttributeName": "status", "AttributeType": "S"},
                {"AttributeName": "created_at", "AttributeType": "S"},
            ],
            "GlobalSecondaryIndexes": [
                {
                    "IndexName": "StatusTimeIndex",
                    "KeySchema": [
                        {"AttributeName": "status", "KeyType": "HASH"},
                        {"AttributeName": "created_at", "KeyType": "RANGE"},
                    ],
                    "Projection": {"ProjectionType": "ALL"},
                },
            ],
            "BillingMode": "PAY_PER_REQUEST",
        },
        {
            "TableName": f"{prefix}{LOCATIONS_TABLE}",
            "KeySchema": [
                {"AttributeName": "location_id", "KeyType": "HASH"},
            ],
            "AttributeDefinitions": [
                {"AttributeName": "location_id", "AttributeType": "S"},
            ],
            "BillingMode": "PAY_PER_REQUEST",
        },
    ]


def create_tables(dynamodb_client: Any, prefix: str = "") -> list[str]:
    """Eksik tabloları oluşturur, oluşturulan tablo adlarını döndürür."""
    created = []
    for table_def in table_definitions(prefix):
        table_name = table_def["TableName"]
        try:
            dynamodb_client.describe_table(TableName=table_name)
            logger.info("%s zaten mevcut, atlanıyor", table_name)
        except ClientError as e:
            if e.response["Error"]["Code"] != "ResourceNotFoundException":
                raise
            logger.info("%s oluşturuluyor...", table_name)
            dynamodb_client.create_table(**table_def)
            waiter = dynamodb_client.get_waiter("table_exists")
            waiter.wait(TableName=table_name)
            created.append(table_name)
    return created


def _scan_all(table: Any, **kwargs: Any) -> list[dict]:
    """Sayfalı scan/query sonuçlarını tek listede toplar."""
    items: list[dict] = []
    while True:
        resp = table.scan(**kwargs)
        items.extend(resp.get("Items", []))
        last_key = resp.get("LastEvaluatedKey")
        if not last_key:
            return items
        kwargs["ExclusiveStartKey"] = last_key


def _query_all(table: Any, **kwargs: Any) -> list[dict]:
    items: list[dict] = []
    while True:
        resp = table.query(**kwargs)
        items.extend(resp.get("Items", []))
        last_key = resp.get("LastEvaluatedKey")
        if not last_key:
            return items
        kwargs["ExclusiveStartKey"] = last_key


def _version_condition(record: InventoryRecord) -> tuple[str, dict]:
    if record.version == 0:
        return "attribute_not_exists(location_id)", {}
    return "version = :expected", {":expected": Decimal(record.version)}


def _is_conflict(error: ClientError) -> bool:
    return error.response["Error"]["Code"] in (
        "ConditionalCheckFailedException",
        "TransactionCanceledException",
    )


class DynamoDBRepository(Repository):
    """boto3 DynamoDB resource üzerinden çalışan depo."""

    def __init__(
        self,
        region_name: str = "us-west-2",
        table_prefix: str = "",
        dynamodb_resource: Optional[Any] = None,
    ):
        # Dependency injection: testlerde MagicMock verilir
        self.dynamodb = dynamodb_resource or boto3.resource(
            "dynamodb", region_name=region_name, config=BOTO_CONFIG
        )
        self.table_prefix = table_prefix
        self.inventory_table = self.dynamodb.Table(f"{table_prefix}{INVENTORY_TABLE}")
        self.movements_table = self.dynamodb.Table(f"{table_prefix}{MOVEMENTS_TABLE}")
        self.alerts_table = self.dynamodb.Table(f"{table_prefix}{ALERTS_TABLE}")
        self.locations_table = self.dynamodb.Table(f"{table_prefix}{LOCATIONS_TABLE}")
        self._serializer = TypeSerializer()

    def _serialize(self, item: dict) -> dict:
        return {k: self._serializer.serialize(v) for k, v in item.items()}

    # --- Stok kayıtları ---

    def get_inventory(self, product_id: str, location_id: str) -> Optional[InventoryRecord]:
        resp = self.inventory_table.get_item(
            Key={"location_id": location_id, "product_id": product_id}
        )
        if "Item" not in resp:
            return None
        return InventoryRecord.from_dict(resp["Item"])

    def list_inventory(
        self, location_id: Optional[str] = None, product_id: Optional[str] = None
    ) -> list[InventoryRecord]:
        if location_id:
            condition = Key("location_id").eq(location_id)
            if product_id:
                condition = condition & Key("product_id").eq(product_id)
            items = _query_all(self.inventory_table, KeyConditionExpression=condition)
        elif product_id:
            # product_id için GSI yok, scan + filter
            items = _scan_all(self.inventory_table, FilterExpression=Attr("product_id").eq(product_id))
        else:
            items = _scan_all(self.inventory_table)
        return [InventoryRecord.from_dict(item) for item in items]

    def save_inventory(self, record: InventoryRecord) -> InventoryRecord:
        condition, values = _version_condition(record)
        item = record.to_dict()
        item["version"] = record.version + 1
        kwargs: dict[str, Any] = {"Item": item, "ConditionExpression": condition}
        if values:
            kwargs["ExpressionAttributeValues"] = values
        try:
            self.inventory_table.put_item(**kwargs)
        except ClientError as e:
            if _is_conflict(e):
                raise ConcurrentModificationError(
                    f"Versiyon çakışması: {record.key} (v{record.version})"
                ) from e
            raise
        record.version += 1
        return record

    def commit_movement(self, records: list[InventoryRecord], movement: StockMovement) -> None:
        operations = []
        for record in records:
            condition, values = _version_condition(record)
            item = record.to_dict()
            item["version"] = record.version + 1
            put: dict[str, Any] = {
                "TableName": self.inventory_table.name,
                "Item": self._serialize(item),
                "ConditionExpression": condition,
            }
            if values:
                put["ExpressionAttributeValues"] = self._serialize(values)
            operations.append({"Put": put})

        operations.append({
            "Put": {
                "TableName": self.movements_table.name,
                "Item": self._serialize(movement.to_dict()),
                "ConditionExpression": "attribute_not_exists(movement_id)",
            }
        })

        try:
            self.dynamodb.meta.client.transact_write_items(TransactItems=operations)
        except ClientError as e:
            if _is_conflict(e):
                raise ConcurrentModificationError(
                    f"Hareket işlemi iptal edildi: {movement.movement_id}"
                ) from e
            raise

        for record in records:
            record.version += 1

    # --- Stok hareketleri ---

    def list_movements(
        self, product_id: Optional[str] = None, location_id: Optional[str] = None
    ) -> list[StockMovement]:
        if product_id:
            items = _query_all(
                self.movements_table,
                IndexName="ProductTimeIndex",
                KeyConditionExpression=Key("product_id").eq(product_id),
            )
        else:
            items = _scan_all(self.movements_table)
        movements = [StockMovement.from_dict(item) for item in items]
        if location_id:
            movements = [
                m for m in movements
                if location_id in (m.from_location_id, m.to_location_id)
            ]
        return sorted(movements, key=lambda m: m.created_at)

    # --- Uyarılar ---

    def get_alert(self, alert_id: str) -> Optional[AlertRecord]:
        resp = self.alerts_table.get_item(Key={"alert_id": alert_id})
        if "Item" not in resp:
            return None
        return AlertRecord.from_dict(resp["Item"])

    def save_alert(self, alert: AlertRecord) -> AlertRecord:
        self.alerts_table.put_item(Item=alert.to_dict())
        return alert

    def list_alerts(
        self,
        location_id: Optional[str] = None,
        product_id: Optional[str] = None,
        statuses: Optional[Iterable[AlertStatus]] = None,
    ) -> list[AlertRecord]:
        if statuses is not None:
            items = []
            for status in statuses:
                items.extend(_query_all(
                    self.alerts_table,
                    IndexName="StatusTimeIndex",
                    KeyConditionExpression=Key("status").eq(AlertStatus(status).value),
                ))
        else:
            items = _scan_all(self.alerts_table)

        alerts = [AlertRecord.from_dict(item) for item in items]
        if location_id:
            alerts = [a for a in alerts if a.location_id == location_id]
        if product_id:
            alerts = [a for a in alerts if a.product_id == product_id]
        return alerts

    # --- Lokasyonlar ---

    def get_location(self, location_id: str) -> Optional[StoreLocation]:
        resp = self.locations_table.get_item(Key={"location_id": location_id})
        if "Item" not in resp:
            return None
        return StoreLocation.from_dict(resp["Item"])

    def save_location(self, location: StoreLocation) -> StoreLocation:
        self.locations_table.put_item(Item=location.to_dict())
        return location

    def list_locations(self) -> list[StoreLocation]:
        return [StoreLocation.from_dict(item) for item in _scan_all(self.locations_table)]
