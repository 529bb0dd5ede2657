"""Local stores for price history and scan state."""

from .local import ParquetBarStore
from .state import ScanStateStore, StorageQuotaError

__all__ = ["ParquetBarStore", "ScanStateStore", "StorageQuotaError"]
