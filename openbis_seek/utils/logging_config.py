"""日志配置

根日志器上挂一个滚动文件处理器和一个控制台处理器，路径、级别和滚动大小
取自配置文件的logging节点。另外提供同步流程中几类固定格式的日志函数。
"""
import logging
from pathlib import Path
from logging.handlers import RotatingFileHandler
from typing import Any, Dict, Optional

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(module)s:%(lineno)d - %(message)s"

DEFAULT_LOG_CONFIG: Dict[str, Any] = {
    "log_dir": "./logs/",
    "log_level": "INFO",
    "max_bytes": 10485760,
    "backup_count": 5,
}


def setup_logger(name: Optional[str] = None, log_config: Optional[Dict[str, Any]] = None) -> logging.Logger:
    """
    配置根日志器并返回指定名称的日志器，确保根日志器上只有一组处理器

    Args:
        name: 日志器名称，同时作为日志文件名
        log_config: YAMLConfig.get_log_config()的返回值；为None时使用默认配置

    Returns:
        配置好的日志器实例
    """
    log_config = {**DEFAULT_LOG_CONFIG, **(log_config or {})}
    level = str(log_config["log_level"]).upper()

    # 确保日志目录存在
    log_dir = Path(log_config["log_dir"])
    log_dir.mkdir(parents=True, exist_ok=True)

    logger_name = name or "openbis_seek"
    logger = logging.getLogger(logger_name)
    logger.setLevel(level)

    # 配置根日志器，确保所有子模块（logging.getLogger(__name__)）的日志都能被捕获
    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(LOG_FORMAT)

    # 文件处理器（支持日志滚动）
    file_handler = RotatingFileHandler(
        log_dir / f"{logger_name}.log",
        maxBytes=int(log_config["max_bytes"]),
        backupCount=int(log_config["backup_count"]),
        encoding="utf-8"
    )
    file_handler.setFormatter(formatter)
    root_logger.addHandler(file_handler)

    # 控制台处理器
    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    return logger


# 专用日志函数（hooks）
def log_skipped_entity(kind: str, code: str, logger: logging.Logger) -> None:
    """记录被黑名单排除的对象（INFO级别）"""
    logger.info(f"跳过黑名单中的{kind}：{code}")


def log_upload_result(file_path: str, location: str, logger: logging.Logger) -> None:
    """记录单个资产的上传结果（失败时异常直接向上抛出，不经过这里）"""
    logger.info(f"文件上传成功 - 文件: {file_path}, 存储位置: {location}")
