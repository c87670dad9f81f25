"""
定时任务基类

子类在 _register_jobs() 中注册任务；run_forever() 启动后台调度线程并阻塞，
收到SIGINT/SIGTERM时关闭调度器后返回。
"""
import logging
import signal
import threading
from abc import ABC, abstractmethod
from typing import Any, Dict, List

from apscheduler.job import Job
from apscheduler.schedulers.background import BackgroundScheduler

from openbis_seek.utils.yaml_config import YAMLConfig

DEFAULT_INTERVAL_MINUTES = 60


class BaseScheduler(ABC):
    def __init__(self, scheduler_name: str, config: YAMLConfig, config_section: str):
        """
        Args:
            scheduler_name: 调度器名称，用于日志器名称和日志内容
            config: 已加载的配置
            config_section: 本调度器读取的配置节点（点分隔路径）
        """
        self.scheduler_name = scheduler_name
        self.config = config
        self.config_section = config_section
        self.logger = logging.getLogger(f"{__name__}.{scheduler_name}")
        self.scheduler_config = self._read_section()

        self.scheduler = BackgroundScheduler()
        self.jobs: List[Job] = []
        self._stopped = threading.Event()

    def _read_section(self) -> Dict[str, Any]:
        section = dict(self.config.get(self.config_section, {}) or {})
        section.setdefault("interval_minutes", None)
        if section["interval_minutes"] is None:
            self.logger.warning(f"{self.config_section}.interval_minutes 未配置，按每{DEFAULT_INTERVAL_MINUTES}分钟执行")
            section["interval_minutes"] = DEFAULT_INTERVAL_MINUTES
        return section

    def _install_signal_handlers(self) -> None:
        def on_signal(signum, frame):
            self.logger.info(f"{self.scheduler_name} 收到信号 {signum}，准备退出")
            self.stop()

        for signum in (signal.SIGINT, signal.SIGTERM):
            signal.signal(signum, on_signal)

    @abstractmethod
    def _register_jobs(self) -> None:
        """注册定时任务"""

    def add_job(self, func, trigger, **kwargs) -> Job:
        job = self.scheduler.add_job(func, trigger, **kwargs)
        self.jobs.append(job)
        self.logger.info(f"{self.scheduler_name} 注册任务 {job.id}（{getattr(func, '__name__', func)}，{trigger}）")
        return job

    def start(self) -> None:
        self._register_jobs()
        self.scheduler.start()
        self.logger.info(f"{self.scheduler_name} 已启动，共 {len(self.jobs)} 个任务（配置节点 {self.config_section}）")

    def stop(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown()
            self.logger.info(f"{self.scheduler_name} 已停止")
        self._stopped.set()

    def run_forever(self) -> None:
        self._install_signal_handlers()
        self.start()
        self._stopped.wait()
