"""openBIS -> SEEK 定时同步调度器"""
from typing import Callable, ContextManager, Dict, List, Optional, Set

from apscheduler.triggers.interval import IntervalTrigger

from openbis_seek.schedulers.base_scheduler import BaseScheduler
from openbis_seek.services.sync_orchestrator import SyncOrchestrator
from openbis_seek.utils.blacklist import DATASET_CODE_PATTERN, SAMPLE_CODE_PATTERN, parse_blacklist
from openbis_seek.utils.yaml_config import YAMLConfig

# 每次执行任务时创建一组新的客户端和编排器，退出上下文时登出
OrchestratorFactory = Callable[[], ContextManager[SyncOrchestrator]]


class SyncScheduler(BaseScheduler):
    """按固定间隔重新同步配置中列出的实验"""

    def __init__(self, config: YAMLConfig, orchestrator_factory: OrchestratorFactory):
        super().__init__(
            scheduler_name="openbis_seek_sync",
            config=config,
            config_section="scheduler.sync",
        )
        self.orchestrator_factory = orchestrator_factory
        self.experiments: List[str] = list(self.scheduler_config.get("experiments") or [])
        self.transfer_data = bool(self.scheduler_config.get("transfer_data", False))

        blacklist_config = config.get_blacklist_config()
        self.dataset_blacklist: Set[str] = parse_blacklist(
            self._blacklist_path("dataset_blacklist"),
            blacklist_config.get("dataset_code_pattern", DATASET_CODE_PATTERN),
            kind="dataset",
        )
        self.sample_blacklist: Set[str] = parse_blacklist(
            self._blacklist_path("sample_blacklist"),
            blacklist_config.get("sample_code_pattern", SAMPLE_CODE_PATTERN),
            kind="sample",
        )

    def _blacklist_path(self, key: str) -> Optional[str]:
        path = self.scheduler_config.get(key)
        return self.config.resolve_path(path) if path else None

    def _register_jobs(self) -> None:
        if not self.experiments:
            self.logger.warning("scheduler.sync.experiments 为空，没有需要定时同步的实验")
        self.add_job(
            func=self.sync_job,
            trigger=IntervalTrigger(minutes=int(self.scheduler_config["interval_minutes"])),
            name="openbis_seek_sync",
            max_instances=1,
            coalesce=True,
        )

    def sync_job(self) -> Dict[str, str]:
        """
        同步任务（定时执行）

        单个实验失败只记录日志，继续同步下一个实验

        Returns:
            实验标识 -> "create"/"update"/"failed"
        """
        self.logger.info(f"开始定时同步，实验数量: {len(self.experiments)}")
        outcome: Dict[str, str] = {}
        for experiment_id in self.experiments:
            try:
                with self.orchestrator_factory() as orchestrator:
                    result = orchestrator.run(
                        experiment_id,
                        dataset_blacklist=self.dataset_blacklist,
                        sample_blacklist=self.sample_blacklist,
                        transfer_data=self.transfer_data,
                    )
                outcome[experiment_id] = result.mode.value
            except Exception as e:
                self.logger.error(f"定时同步实验 {experiment_id} 失败: {str(e)}", exc_info=True)
                outcome[experiment_id] = "failed"

        failed = sum(1 for v in outcome.values() if v == "failed")
        self.logger.info(f"定时同步完成: 成功{len(outcome) - failed}，失败{failed}")
        return outcome
