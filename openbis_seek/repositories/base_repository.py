# openbis_seek/repositories/base_repository.py
"""
ORM仓储基类

会话由调用方（get_session上下文管理器）提供，提交和回滚也由调用方负责；
仓储只做查询和修改，数据库异常记录日志后原样抛出。
"""
import logging
from typing import Any, Dict, Generic, Optional, Type, TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

RecordT = TypeVar("RecordT")

logger = logging.getLogger(__name__)


class BaseRepository(Generic[RecordT]):
    """子类通过类属性指定ORM模型和主键字段"""

    model: Type[RecordT]
    pk_field: str = "id"

    def __init__(self, db_session: Session):
        if db_session is None:
            raise ValueError("仓储需要由调用方提供数据库会话")
        self.db_session = db_session

    @property
    def table_name(self) -> str:
        return self.model.__tablename__

    def get_by_pk(self, pk_value: Any) -> Optional[RecordT]:
        try:
            return self.db_session.get(self.model, pk_value)
        except SQLAlchemyError as e:
            logger.error(f"查询{self.table_name}记录失败（{self.pk_field}={pk_value}）：{str(e)}", exc_info=True)
            raise

    def add(self, record: RecordT) -> RecordT:
        """写入一条记录并flush，返回后自增主键可用"""
        try:
            self.db_session.add(record)
            self.db_session.flush()
        except SQLAlchemyError as e:
            logger.error(f"写入{self.table_name}记录失败：{str(e)}", exc_info=True)
            raise
        logger.debug(f"{self.table_name}新增记录 {self.pk_field}={getattr(record, self.pk_field)}")
        return record

    def update_fields(self, pk_value: Any, values: Dict[str, Any]) -> bool:
        """
        修改一条记录的多个字段

        Returns:
            记录不存在时返回False

        Raises:
            AttributeError: 模型中没有该字段
        """
        record = self.get_by_pk(pk_value)
        if record is None:
            logger.warning(f"{self.table_name}中没有 {self.pk_field}={pk_value} 的记录，跳过更新")
            return False

        unknown = [name for name in values if not hasattr(self.model, name)]
        if unknown:
            raise AttributeError(f"{self.model.__name__} 没有字段：{unknown}")

        try:
            for name, value in values.items():
                setattr(record, name, value)
            self.db_session.flush()
        except SQLAlchemyError as e:
            logger.error(f"更新{self.table_name}记录 {pk_value} 失败：{str(e)}", exc_info=True)
            raise
        return True
