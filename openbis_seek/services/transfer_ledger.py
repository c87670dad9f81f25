# openbis_seek/services/transfer_ledger.py
"""
传输记录台账

同步开始时写入一条running记录，结束时更新为success或failed。
每个操作使用独立的会话，失败的同步也能留下记录。
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.engine import Engine

from openbis_seek.models.database import get_engine, get_session
from openbis_seek.models.transfer_record import Base, TransferRecord
from openbis_seek.repositories.transfer_record_repository import TransferRecordRepository

logger = logging.getLogger(__name__)


class TransferLedger:
    def __init__(self, engine: Engine):
        self.engine = engine
        Base.metadata.create_all(self.engine)

    @classmethod
    def from_config(cls, db_config: Optional[Dict[str, Any]]) -> Optional["TransferLedger"]:
        """database节点未启用时返回None"""
        if not db_config:
            return None
        return cls(get_engine(db_config))

    def start(self, experiment_id: str, transfer_data: bool) -> int:
        with get_session(self.engine) as session:
            record = TransferRecordRepository(session).add(TransferRecord(
                experiment_id=experiment_id,
                status="running",
                transfer_data=int(transfer_data),
                started_at=datetime.now(),
            ))
            record_id = record.id
        logger.debug(f"传输记录 {record_id} 已创建：{experiment_id}")
        return record_id

    def update(self, record_id: int, **values: Any) -> None:
        with get_session(self.engine) as session:
            TransferRecordRepository(session).update_fields(record_id, values)

    def finish(self, record_id: int, perm_id: str, mode: str, assay_endpoint: str, uploaded_assets: int) -> None:
        self.update(
            record_id,
            perm_id=perm_id,
            mode=mode,
            assay_endpoint=assay_endpoint,
            uploaded_assets=uploaded_assets,
            status="success",
            finished_at=datetime.now(),
        )

    def fail(self, record_id: int, error: BaseException, uploaded_assets: int = 0) -> None:
        self.update(
            record_id,
            status="failed",
            error_message=f"{type(error).__name__}: {error}",
            uploaded_assets=uploaded_assets,
            finished_at=datetime.now(),
        )

    def history(self, experiment_id: str, limit: int = 10) -> List[Dict[str, Any]]:
        """最近的传输记录（字典形式，会话关闭后仍可使用）"""
        with get_session(self.engine) as session:
            return [
                {
                    "id": r.id,
                    "experiment_id": r.experiment_id,
                    "perm_id": r.perm_id,
                    "mode": r.mode,
                    "assay_endpoint": r.assay_endpoint,
                    "status": r.status,
                    "uploaded_assets": r.uploaded_assets,
                    "error_message": r.error_message,
                    "started_at": r.started_at,
                    "finished_at": r.finished_at,
                }
                for r in TransferRecordRepository(session).get_recent(experiment_id, limit)
            ]
