from typing import List

from openbis_seek.models.transfer_record import TransferRecord
from openbis_seek.repositories.base_repository import BaseRepository


class TransferRecordRepository(BaseRepository[TransferRecord]):
    """transfer_record表的仓储"""

    model = TransferRecord

    def get_recent(self, experiment_id: str, limit: int = 10) -> List[TransferRecord]:
        """某个实验最近的传输记录（按开始时间倒序）"""
        return (
            self.db_session.query(TransferRecord)
            .filter(TransferRecord.experiment_id == experiment_id)
            .order_by(TransferRecord.started_at.desc(), TransferRecord.id.desc())
            .limit(limit)
            .all()
        )
