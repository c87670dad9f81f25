# openbis_seek/translation/type_mapping.py
"""
类型映射表

启动时从映射目录加载一次，之后只读。所有进入翻译流程的openBIS类型都必须显式配置，
缺失或为空时抛出UnmappedTypeError，不提供任何默认值。
"""

import logging
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Union

import yaml

from openbis_seek.exceptions import UnmappedTypeError, ValidationError
from openbis_seek.models.isa import SampleAttributeType

logger = logging.getLogger(__name__)


class MappingKind(str, Enum):
    ASSAY_CLASS = "assay_class"
    ASSAY_TYPE = "assay_type"
    ASSET_TYPE = "asset_type"
    ATTRIBUTE_TYPE = "attribute_type"


# 每种映射对应的文件名
MAPPING_FILES: Dict[MappingKind, str] = {
    MappingKind.ASSAY_CLASS: "experiment_type_to_assay_class.yaml",
    MappingKind.ASSAY_TYPE: "experiment_type_to_assay_type.yaml",
    MappingKind.ASSET_TYPE: "dataset_type_to_asset_type.yaml",
    MappingKind.ATTRIBUTE_TYPE: "openbis_datatype_to_seek_attributetype.yaml",
}

DATA_FORMAT_FILE = "file_extension_to_data_format.yaml"

# 文件扩展名 -> EDAM数据格式（可选注解，映射目录中没有配置文件时使用）
DEFAULT_DATA_FORMATS: Dict[str, str] = {
    "fastq.gz": "http://edamontology.org/format_1930",
    "fastq": "http://edamontology.org/format_1930",
    "json": "http://edamontology.org/format_3464",
    "yaml": "http://edamontology.org/format_3750",
    "raw": "http://edamontology.org/format_3712",
    "tsv": "http://edamontology.org/format_3475",
    "csv": "http://edamontology.org/format_3752",
    "txt": "http://edamontology.org/format_2330",
}


def _load_yaml_table(path: Path) -> Dict[str, Any]:
    """读取一个YAML键值表"""
    if not path.is_file():
        raise ValidationError(f"映射文件不存在：{path}")
    try:
        with open(path, "r", encoding="utf-8") as f:
            table = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ValidationError(f"映射文件解析错误：{path}，错误：{str(e)}") from e
    if not isinstance(table, dict):
        raise ValidationError(f"映射文件必须是键值表：{path}")
    return {str(k): v for k, v in table.items()}


def _to_attribute_type(code: str, entry: Any) -> Optional[SampleAttributeType]:
    """属性类型条目转换为SampleAttributeType，seek_id为空视为未配置"""
    if not isinstance(entry, dict):
        return None
    seek_id = entry.get("seek_id")
    if seek_id is None or not str(seek_id).strip():
        return None
    return SampleAttributeType(
        seek_id=str(seek_id),
        title=str(entry.get("seek_title") or ""),
        base_type=str(entry.get("seek_type") or ""),
    )


class TypeMappingRegistry:
    """openBIS类型编码 -> SEEK取值的查找表"""

    def __init__(
        self,
        tables: Mapping[MappingKind, Mapping[str, Any]],
        data_formats: Optional[Mapping[str, str]] = None,
    ):
        self._tables: Mapping[MappingKind, Mapping[str, Any]] = MappingProxyType({
            kind: MappingProxyType(dict(tables.get(kind, {}))) for kind in MappingKind
        })
        formats = DEFAULT_DATA_FORMATS if data_formats is None else data_formats
        self._data_formats: Mapping[str, str] = MappingProxyType(
            {str(k).lower(): str(v) for k, v in formats.items()}
        )

    @classmethod
    def from_directory(cls, mappings_dir: Union[str, Path]) -> "TypeMappingRegistry":
        """
        从映射目录加载全部映射表

        四个类型映射文件必须存在；扩展名->数据格式表可选
        """
        directory = Path(mappings_dir)
        tables = {kind: _load_yaml_table(directory / file_name) for kind, file_name in MAPPING_FILES.items()}

        data_formats = None
        data_format_path = directory / DATA_FORMAT_FILE
        if data_format_path.is_file():
            data_formats = _load_yaml_table(data_format_path)

        logger.info(
            f"成功加载类型映射：{directory}（"
            + "，".join(f"{kind.value}: {len(tables[kind])}条" for kind in MappingKind)
            + "）"
        )
        return cls(tables, data_formats)

    def resolve(self, kind: MappingKind, source_type_code: str) -> Any:
        """
        查找映射值

        Args:
            kind: 映射种类
            source_type_code: openBIS类型编码（或数据类型名称）

        Returns:
            映射值；ATTRIBUTE_TYPE返回SampleAttributeType，其余返回字符串

        Raises:
            UnmappedTypeError: 未配置或配置为空
        """
        entry = self._tables[kind].get(source_type_code)
        if kind == MappingKind.ATTRIBUTE_TYPE:
            value = _to_attribute_type(source_type_code, entry)
        else:
            value = None if entry is None or not str(entry).strip() else str(entry).strip()

        if value is None:
            raise UnmappedTypeError(
                kind.value, source_type_code,
                f"需要在 {MAPPING_FILES[kind]} 中添加对应的映射"
            )
        return value

    def data_format_for_file(self, file_name: str) -> Optional[str]:
        """
        按文件扩展名查找数据格式注解（优先匹配多段扩展名，如fastq.gz）

        没有匹配时返回None，注解是可选信息
        """
        parts = file_name.lower().split(".")[1:]
        for i in range(len(parts)):
            annotation = self._data_formats.get(".".join(parts[i:]))
            if annotation:
                return annotation
        return None
