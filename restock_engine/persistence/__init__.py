from restock_engine.persistence.base import Repository
from restock_engine.persistence.dynamodb import DynamoDBRepository
from restock_engine.persistence.memory import InMemoryRepository

__all__ = [
    "DynamoDBRepository",
    "InMemoryRepository",
    "Repository",
]
