# -*- coding: utf-8 -*-
"""
样本类型传输服务：把openBIS的样本类型逐个创建到SEEK

SEEK中已存在同名样本类型时默认跳过（ignore_existing=True时重复创建），
黑名单中的样本类型不传输。
"""

import logging
from typing import Dict, Iterable, List, Optional

from openbis_seek.clients.openbis_client import OpenbisClient
from openbis_seek.clients.seek_client import SeekClient
from openbis_seek.translation.translator import OpenbisSeekTranslator
from openbis_seek.utils.logging_config import log_skipped_entity

logger = logging.getLogger(__name__)


class SampleTypeService:
    def __init__(self, openbis: OpenbisClient, seek: SeekClient, translator: OpenbisSeekTranslator):
        self.openbis = openbis
        self.seek = seek
        self.translator = translator

    def transfer(self, blacklist: Optional[Iterable[str]] = None, ignore_existing: bool = False) -> Dict[str, List[str]]:
        """
        传输全部样本类型

        Returns:
            统计：created（"编码:SEEK id"）、skipped_existing、skipped_blacklisted
        """
        blacklist = set(blacklist or ())
        stats: Dict[str, List[str]] = {"created": [], "skipped_existing": [], "skipped_blacklisted": []}

        for sample_type in self.openbis.get_sample_types():
            code = sample_type.code
            if code in blacklist:
                log_skipped_entity("样本类型", code, logger)
                stats["skipped_blacklisted"].append(code)
                continue

            if not ignore_existing and self.seek.sample_type_exists(code):
                logger.warning(f"SEEK中已存在样本类型 {code}，如需重复创建请使用 --ignore-existing")
                stats["skipped_existing"].append(code)
                continue

            sample_type_id = self.seek.create_sample_type(self.translator.translate_sample_type(sample_type))
            stats["created"].append(f"{code}:{sample_type_id}")

        logger.info(
            f"样本类型传输完成：新建 {len(stats['created'])} 个，"
            f"已存在跳过 {len(stats['skipped_existing'])} 个，黑名单跳过 {len(stats['skipped_blacklisted'])} 个"
        )
        return stats
