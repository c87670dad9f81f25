# -*- coding: utf-8 -*-
"""
同步编排模块，负责一次 openBIS 实验 -> SEEK assay 的完整同步

流程：
1. SEARCHING：获取openBIS实验及后代、SEEK样本类型表，用实验permId检索SEEK中已有的assay
2. 没有命中 -> CREATING；命中一个 -> UPDATING（update_existing为False时仍为CREATING）；命中多个 -> 抛出AmbiguousMatchError，不做任何写操作
3. STREAMING：仅在需要上传数据且有待上传资产时，逐个把openBIS文件流式写入SEEK
4. DONE；任何异常 -> FAILED 并原样抛出（已上传的资产不回滚）
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from functools import partial
from typing import Iterable, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from openbis_seek.clients.openbis_client import OpenbisClient
from openbis_seek.clients.seek_client import SeekClient
from openbis_seek.exceptions import AmbiguousMatchError
from openbis_seek.models.isa import AssayWithQueuedAssets
from openbis_seek.services.transfer_ledger import TransferLedger
from openbis_seek.translation.translator import OpenbisSeekTranslator
from openbis_seek.utils.logging_config import log_upload_result

logger = logging.getLogger(__name__)


class SyncState(str, Enum):
    SEARCHING = "searching"
    CREATING = "creating"
    UPDATING = "updating"
    STREAMING = "streaming"
    DONE = "done"
    FAILED = "failed"


class SyncMode(str, Enum):
    CREATE = "create"
    UPDATE = "update"


@dataclass
class SyncResult:
    mode: SyncMode
    assay_endpoint: str
    uploaded_urls: List[str] = field(default_factory=list)
    states: List[SyncState] = field(default_factory=list)


class SyncOrchestrator:
    """同步编排器，单线程顺序执行"""

    def __init__(
        self,
        openbis: OpenbisClient,
        seek: SeekClient,
        translator: OpenbisSeekTranslator,
        ledger: Optional[TransferLedger] = None,
    ):
        self.openbis = openbis
        self.seek = seek
        self.translator = translator
        self.ledger = ledger
        self.states: List[SyncState] = []

    @property
    def state(self) -> Optional[SyncState]:
        return self.states[-1] if self.states else None

    def _enter(self, state: SyncState) -> None:
        self.states.append(state)
        logger.debug(f"同步状态 -> {state.value}")

    def find_existing_assay(self, perm_id: str) -> Optional[str]:
        """
        用实验permId检索SEEK中对应的assay

        Raises:
            AmbiguousMatchError: 命中多个assay
        """
        assay_ids = self.seek.search_assays_containing_keyword(perm_id)
        if len(assay_ids) > 1:
            raise AmbiguousMatchError(perm_id, assay_ids)
        return assay_ids[0] if assay_ids else None

    def run(
        self,
        experiment_id: str,
        dataset_blacklist: Optional[Iterable[str]] = None,
        sample_blacklist: Optional[Iterable[str]] = None,
        transfer_data: bool = False,
        update_existing: bool = True,
    ) -> SyncResult:
        """
        同步一个openBIS实验

        Args:
            experiment_id: openBIS实验标识（identifier或permId）
            dataset_blacklist: 不传输的数据集编码
            sample_blacklist: 不传输的样本编码
            transfer_data: 是否上传文件内容
            update_existing: 为False时即使SEEK中已有对应assay也新建节点，不修改已有信息

        Returns:
            SyncResult
        """
        self.states = []
        record_id = self.ledger.start(experiment_id, transfer_data) if self.ledger else None
        uploaded_urls: List[str] = []

        try:
            self._enter(SyncState.SEARCHING)
            logger.info(f"从openBIS获取实验信息：{experiment_id}")
            graph = self.openbis.experiment_with_descendants(experiment_id)
            sample_type_ids = self.seek.get_sample_type_names_to_ids()
            perm_id = graph.experiment.perm_id
            assay_id = self.find_existing_assay(perm_id)

            structure = self.translator.translate(
                graph, sample_type_ids, dataset_blacklist, sample_blacklist, transfer_data
            )

            result: AssayWithQueuedAssets
            if assay_id is not None and update_existing:
                self._enter(SyncState.UPDATING)
                mode = SyncMode.UPDATE
                logger.info(f"找到实验 {perm_id} 对应的SEEK assay：{assay_id}，更新节点")
                result = self.seek.update_node(structure, assay_id, transfer_data)
            else:
                self._enter(SyncState.CREATING)
                mode = SyncMode.CREATE
                if assay_id is None:
                    logger.info(f"SEEK中没有实验 {perm_id} 对应的assay，新建节点")
                else:
                    logger.info(f"实验 {perm_id} 已有SEEK assay {assay_id}，按--no-update新建节点")
                result = self.seek.create_node(structure, transfer_data)

            if transfer_data and result.assets:
                self._enter(SyncState.STREAMING)
                for asset in result.assets:
                    logger.info(f"开始把文件 {asset.file_path} 从openBIS流式传输到SEEK")
                    url = self.seek.upload_blob(
                        asset.blob_endpoint,
                        partial(self.openbis.stream_file, asset.dataset_code, asset.file_path),
                    )
                    uploaded_urls.append(url)
                    log_upload_result(asset.file_path, url, logger)

            self._enter(SyncState.DONE)
            logger.info(f"{result.assay_endpoint} 同步完成（{mode.value}，上传文件 {len(uploaded_urls)} 个）")

        except Exception as e:
            # 异常由调用方（命令行入口或调度器）记录
            self._enter(SyncState.FAILED)
            if record_id is not None:
                self._record_failure(record_id, e, len(uploaded_urls))
            raise

        if record_id is not None:
            self._record_success(record_id, perm_id, mode, result.assay_endpoint, len(uploaded_urls))
        return SyncResult(mode=mode, assay_endpoint=result.assay_endpoint,
                          uploaded_urls=uploaded_urls, states=list(self.states))

    def _record_success(
        self, record_id: int, perm_id: str, mode: SyncMode, assay_endpoint: str, uploaded_assets: int
    ) -> None:
        try:
            self.ledger.finish(record_id, perm_id, mode.value, assay_endpoint, uploaded_assets)
        except SQLAlchemyError as db_error:
            # SEEK中的修改已完成，台账写入失败不改变同步结果
            logger.error(f"写入传输记录 {record_id} 失败：{str(db_error)}", exc_info=True)

    def _record_failure(self, record_id: int, error: BaseException, uploaded_assets: int) -> None:
        try:
            self.ledger.fail(record_id, error, uploaded_assets)
        except SQLAlchemyError as db_error:
            # 台账写入失败不能掩盖同步本身的异常
            logger.error(f"写入传输记录 {record_id} 失败：{str(db_error)}", exc_info=True)
