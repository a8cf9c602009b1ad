from .dynamodb_detour_repository import DynamoDbDetourRepository
from .local_gtfs_repository import LocalGtfsRepository

__all__ = [
    "DynamoDbDetourRepository",
    "LocalGtfsRepository",
]
