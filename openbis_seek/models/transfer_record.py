# openbis_seek/models/transfer_record.py
"""
传输记录表：每次同步运行一行，只记录运行结果，不保存翻译出的结构
"""

from sqlalchemy import Column, DateTime, Enum, Index, Integer, String, Text
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func

Base = declarative_base()


class TransferRecord(Base):
    __tablename__ = 'transfer_record'

    id = Column(Integer, primary_key=True, autoincrement=True)
    experiment_id = Column(String(255), nullable=False, comment="命令行传入的openBIS实验标识")
    perm_id = Column(String(100), nullable=True, comment="openBIS实验permId")
    mode = Column(Enum('create', 'update', name='transfer_mode'), nullable=True, comment="新建或更新SEEK节点")
    assay_endpoint = Column(String(255), nullable=True)
    status = Column(Enum('running', 'success', 'failed', name='transfer_status'), default='running', nullable=False)
    transfer_data = Column(Integer, default=0, nullable=False, comment="是否上传文件内容")
    uploaded_assets = Column(Integer, default=0, nullable=False)
    error_message = Column(Text, nullable=True)
    started_at = Column(DateTime, default=func.current_timestamp(), nullable=False)
    finished_at = Column(DateTime, nullable=True)

    __table_args__ = (
        Index('idx_experiment_id', 'experiment_id'),
        Index('idx_status', 'status'),
        Index('idx_started_at', 'started_at'),
        {'mysql_charset': 'utf8mb4', 'mysql_engine': 'InnoDB'}
    )

    def __repr__(self) -> str:
        return f"TransferRecord(id={self.id}, experiment_id={self.experiment_id}, status={self.status})"
