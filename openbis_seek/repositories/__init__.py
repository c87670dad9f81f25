from .transfer_record_repository import TransferRecordRepository

__all__ = [
    "TransferRecordRepository",
]
