# openbis_seek/utils/yaml_config.py
"""
YAML配置文件处理工具
提供统一接口加载和解析YAML格式的配置文件，为每个配置模块提供专用接口。
支持按节点路径查询配置项，自动处理配置文件不存在、节点缺失等异常情况。

运行时各组件不直接读取全局配置，而是由启动入口调用 get_sync_settings()
生成一个不可变的 SyncSettings，再显式传入翻译器、同步器和客户端。
"""

import os
import yaml
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Any, Optional
import logging

from openbis_seek.exceptions import ValidationError

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "OPENBIS_SEEK_CONFIG"


@dataclass(frozen=True)
class SyncSettings:
    """
    同步运行所需的全部配置（启动时构造一次，之后只读）
    - openbis_*: openBIS应用服务器(AS)/数据存储服务器(DSS)地址、账号、深链接前缀
    - seek_*: SEEK地址与账号
    - default_project/default_study: 新建SEEK节点归属的项目和study
    - sample_title_attribute/registration_date_attribute: 样本中由程序注入的两个属性名
    """
    openbis_as_url: str
    openbis_dss_url: str
    openbis_base_url: str
    openbis_user: str
    openbis_password: str
    seek_url: str
    seek_user: str
    seek_password: str
    default_project: str
    default_study: str
    sample_title_attribute: str
    registration_date_attribute: str
    mappings_dir: str
    timeout_seconds: int = 30
    chunk_size: int = 8192


class YAMLConfig:
    """YAML配置文件处理器"""

    def __init__(self, config_file: Optional[str] = None):
        """
        初始化配置处理器

        Args:
            config_file: YAML配置文件路径，默认读取环境变量OPENBIS_SEEK_CONFIG，
                         否则使用项目根目录下的config/config.yaml
        """
        self.config_path = config_file or os.getenv(CONFIG_ENV_VAR) or self._get_default_config_path()
        self.config_data = self._load_config()
        self._validate_core_config()

    def _get_default_config_path(self) -> str:
        """获取默认配置文件路径（config/config.yaml）"""
        current_dir = Path(__file__).absolute().parent.parent.parent  # openbis_seek/utils/ -> openbis_seek/ -> 项目根目录
        return str(current_dir / "config" / "config.yaml")

    def _load_config(self) -> Dict[str, Any]:
        """加载并解析YAML配置文件"""
        config_path = Path(self.config_path).absolute()

        if not config_path.exists():
            raise ValidationError(f"配置文件不存在：{config_path}")

        if not config_path.is_file():
            raise ValidationError(f"配置路径不是文件：{config_path}")

        try:
            with open(config_path, 'r', encoding='utf-8') as f:
                config_data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ValidationError(f"YAML配置文件解析错误：{str(e)}（文件：{config_path}）") from e

        if not isinstance(config_data, dict):
            raise ValidationError(f"配置文件顶层必须是字典（文件：{config_path}）")
        logger.info(f"成功加载YAML配置文件：{config_path}")
        return config_data

    def _validate_core_config(self) -> None:
        """验证核心配置节点"""
        required_sections = ["openbis", "seek", "mappings", "logging"]
        missing = [sec for sec in required_sections if sec not in self.config_data]
        if missing:
            raise ValidationError(f"配置文件缺少必填节点：{missing}（文件：{self.config_path}）")

    def get(self, path: str, default: Any = None, required: bool = False) -> Any:
        """
        按路径获取配置项

        Args:
            path: 配置节点路径，使用点分隔（如"seek.default_project"）
            default: 当配置项不存在时返回的默认值
            required: 是否为必填项，若为True且配置项不存在（或为空）则抛出ValidationError

        Examples:
            >>> config.get("seek.default_project")
            '1'
            >>> config.get("scheduler.sync.interval_minutes", 60)
            60
        """
        current = self.config_data
        for key in path.split('.'):
            if not isinstance(current, dict) or key not in current:
                if required:
                    raise ValidationError(f"配置文件中缺少必填节点：{path}（文件：{self.config_path}）")
                return default
            current = current[key]

        if required and (current is None or (isinstance(current, str) and not current.strip())):
            raise ValidationError(f"配置项 {path} 不能为空（文件：{self.config_path}）")
        return current

    def resolve_path(self, value: str) -> str:
        """相对路径按配置文件所在目录解析"""
        path = Path(value)
        if not path.is_absolute():
            path = Path(self.config_path).absolute().parent / path
        return str(path)

    # 专用接口：为每个配置模块提供独立的方法
    def get_log_config(self) -> Dict[str, Any]:
        """获取日志配置（logging节点）"""
        return {
            "log_dir": self.get("logging.log_dir", default="./logs/"),
            "log_level": self.get("logging.log_level", default="INFO"),
            "max_bytes": self.get("logging.max_bytes", default=10485760),
            "backup_count": self.get("logging.backup_count", default=5)
        }

    def get_database_config(self) -> Optional[Dict[str, Any]]:
        """获取传输记录数据库配置（database节点，enabled为False时返回None）"""
        db_config = self.get("database", default=None)
        if not db_config or not db_config.get("enabled", False):
            return None
        return db_config

    def get_blacklist_config(self) -> Dict[str, Any]:
        """获取黑名单编码格式配置（blacklist节点，可选）"""
        return self.get("blacklist", default={}) or {}

    def get_sync_settings(self) -> SyncSettings:
        """
        构造不可变的同步配置

        必填项缺失时抛出ValidationError，保证在任何网络请求之前失败
        """
        as_url = str(self.get("openbis.as_url", required=True)).rstrip('/')
        return SyncSettings(
            openbis_as_url=as_url,
            openbis_dss_url=str(self.get("openbis.dss_url", default=as_url)).rstrip('/'),
            openbis_base_url=str(self.get("openbis.base_url", default=f"{as_url}/openbis/")),
            openbis_user=str(self.get("openbis.user", required=True)),
            openbis_password=os.getenv("OPENBIS_PASSWORD") or str(self.get("openbis.password", default="")),
            seek_url=str(self.get("seek.url", required=True)).rstrip('/'),
            seek_user=str(self.get("seek.user", required=True)),
            seek_password=os.getenv("SEEK_PASSWORD") or str(self.get("seek.password", default="")),
            default_project=str(self.get("seek.default_project", required=True)),
            default_study=str(self.get("seek.default_study", required=True)),
            sample_title_attribute=str(self.get("seek.sample_title_attribute", required=True)),
            registration_date_attribute=str(self.get("seek.registration_date_attribute", required=True)),
            mappings_dir=self.resolve_path(str(self.get("mappings.dir", required=True))),
            timeout_seconds=int(self.get("openbis.timeout_seconds", default=30)),
            chunk_size=int(self.get("seek.chunk_size", default=8192)),
        )
