# -*- coding: utf-8 -*-
"""
openBIS只读查询报告

- list_data：列出实验或样本下的数据集及其基本信息
- sample_type_hierarchy：统计样本类型之间的父子关系及出现次数

结果逐行写入日志目录下带时间戳的summary文件。
"""

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Union

from openbis_seek.clients.openbis_client import OpenbisClient
from openbis_seek.exceptions import ValidationError
from openbis_seek.models.openbis import OpenbisDataset

logger = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "%Y-%m-%d_%H%M%S"
UPLOAD_TIME_FORMAT = "%m-%d-%y %H:%M:%S"


def summary_timestamp() -> str:
    return datetime.now(timezone.utc).strftime(TIMESTAMP_FORMAT)


def write_summary(lines: List[str], output_path: Union[str, Path]) -> Path:
    """把summary逐行写入文件"""
    path = Path(output_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        for line in lines:
            f.write(f"{line}\n")
    logger.info(f"summary已写入：{path}")
    return path


def short_code(object_id: str) -> str:
    """/SPACE/PROJECT/CODE 形式的标识只取最后的编码"""
    return object_id.rstrip("/").split("/")[-1]


class ReportService:
    def __init__(self, openbis: OpenbisClient, log_dir: Union[str, Path]):
        self.openbis = openbis
        self.log_dir = Path(log_dir)

    @staticmethod
    def describe_datasets(datasets: List[OpenbisDataset]) -> List[str]:
        lines = []
        for index, dataset in enumerate(datasets, start=1):
            lines.append(f"[{index}]")
            lines.append(f"ID: {dataset.code} ({dataset.experiment_identifier})")
            lines.append(f"Type: {dataset.type_code}")
            uploaded_at = dataset.registration_date.strftime(UPLOAD_TIME_FORMAT) if dataset.registration_date else "-"
            lines.append(f"Uploaded by {dataset.registrator or '-'} ({uploaded_at})")
            lines.append("")
        return lines

    def list_data(self, object_code: Optional[str] = None, spaces: Optional[List[str]] = None) -> List[str]:
        """
        列出数据集

        Args:
            object_code: 实验或样本的编码/标识；为空时列出spaces下全部实验和样本的数据集
            spaces: 限定的空间

        Raises:
            ValidationError: 既没有对象编码也没有空间
        """
        spaces = list(spaces or [])
        if not spaces and not object_code:
            raise ValidationError("list-data 需要提供对象编码或 --space")

        object_ids: List[str] = []
        if object_code:
            object_ids.append(object_code)
        else:
            for experiments in self.openbis.get_experiments_by_space(spaces).values():
                object_ids.extend(e.identifier for e in experiments)
            for samples in self.openbis.get_samples_by_space(spaces).values():
                object_ids.extend(s.identifier for s in samples)

        summary: List[str] = []
        for object_id in object_ids:
            code = short_code(object_id)
            if code != object_id:
                logger.info(f"{object_id} 不是对象编码，改为查询：{code}")

            of_experiment = self.openbis.list_datasets_of_experiment(spaces, code)
            if of_experiment:
                summary.append(f"Found {len(of_experiment)} datasets for experiment {code}:")
                summary.extend(self.describe_datasets(of_experiment))

            of_sample = self.openbis.list_datasets_of_sample(spaces, code)
            if of_sample:
                summary.append(f"Found {len(of_sample)} datasets of sample {code}:")
                summary.extend(self.describe_datasets(of_sample))

        write_summary(summary, self.log_dir / f"find_datasets_summary{summary_timestamp()}.txt")
        return summary

    def sample_type_hierarchy(self, spaces: Optional[List[str]] = None,
                              output_path: Optional[Union[str, Path]] = None) -> List[str]:
        """样本类型层级（按出现次数升序）"""
        spaces = list(spaces or [])
        if spaces:
            summary = [f"Querying samples in space: {', '.join(spaces)}..."]
        else:
            summary = ["Querying samples in all available spaces..."]

        hierarchy = self.openbis.query_full_sample_hierarchy(spaces)
        for (parent, child), count in sorted(hierarchy.items(), key=lambda item: (item[1], item[0][0], item[0][1] or "")):
            connection = f"{parent} -> {child}" if child else parent
            summary.append(f"{connection} ({count})")

        output = output_path or self.log_dir / f"sample_model_summary{summary_timestamp()}.txt"
        write_summary(summary, output)
        return summary
