# openbis_seek/models/openbis.py
"""
openBIS侧的数据模型（只读）

由OpenbisClient从V3 JSON-RPC响应解析得到，一次同步运行独占，获取后不再修改。
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

# openBIS属性类型中表示"引用另一个样本"的数据类型
SAMPLE_DATA_TYPE = "SAMPLE"


def _nested(data: Optional[Dict[str, Any]], *keys: str, default: Any = None) -> Any:
    """安全地按层级读取嵌套字典"""
    current: Any = data
    for key in keys:
        if not isinstance(current, dict) or key not in current or current[key] is None:
            return default
        current = current[key]
    return current


def parse_timestamp(value: Any) -> Optional[datetime]:
    """openBIS返回的毫秒时间戳转为UTC时间"""
    if value is None:
        return None
    return datetime.fromtimestamp(int(value) / 1000, tz=timezone.utc)


@dataclass(frozen=True)
class PropertyAssignment:
    """样本类型上的属性定义：编码、显示名称、数据类型"""
    code: str
    label: str
    data_type: str

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "PropertyAssignment":
        property_type = data.get("propertyType") or {}
        code = property_type.get("code", "")
        return cls(
            code=code,
            label=property_type.get("label") or code,
            data_type=property_type.get("dataType", ""),
        )


@dataclass
class SampleType:
    code: str
    property_assignments: List[PropertyAssignment] = field(default_factory=list)

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "SampleType":
        return cls(
            code=data.get("code", ""),
            property_assignments=[
                PropertyAssignment.from_json(a) for a in data.get("propertyAssignments") or []
            ],
        )


@dataclass
class OpenbisSample:
    code: str
    perm_id: str
    identifier: str
    sample_type: SampleType
    properties: Dict[str, str] = field(default_factory=dict)
    registration_date: Optional[datetime] = None
    space: str = ""
    children: List["OpenbisSample"] = field(default_factory=list)

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "OpenbisSample":
        return cls(
            code=data.get("code", ""),
            perm_id=_nested(data, "permId", "permId", default=""),
            identifier=_nested(data, "identifier", "identifier", default=""),
            sample_type=SampleType.from_json(data.get("type") or {}),
            properties={k: v for k, v in (data.get("properties") or {}).items()},
            registration_date=parse_timestamp(data.get("registrationDate")),
            space=_nested(data, "space", "code", default=""),
            children=[cls.from_json(c) for c in data.get("children") or [] if isinstance(c, dict)],
        )


@dataclass(frozen=True)
class DataSetFile:
    """数据集中的一个文件（或目录）条目"""
    path: str
    directory: bool
    file_length: int
    dataset_perm_id: str

    @property
    def file_name(self) -> str:
        return self.path.rstrip("/").split("/")[-1]

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "DataSetFile":
        return cls(
            path=data.get("path") or "",
            directory=bool(data.get("directory", False)),
            file_length=int(data.get("fileLength") or 0),
            dataset_perm_id=_nested(data, "dataSetPermId", "permId", default=""),
        )


@dataclass
class OpenbisDataset:
    code: str
    type_code: str
    experiment_identifier: str = ""
    space: str = ""
    registration_date: Optional[datetime] = None
    registrator: str = ""

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "OpenbisDataset":
        registrator = data.get("registrator") or {}
        name = " ".join(p for p in (registrator.get("firstName"), registrator.get("lastName")) if p)
        return cls(
            code=data.get("code") or _nested(data, "permId", "permId", default=""),
            type_code=_nested(data, "type", "code", default=""),
            experiment_identifier=_nested(data, "experiment", "identifier", "identifier", default=""),
            space=_nested(data, "experiment", "project", "space", "code", default=""),
            registration_date=parse_timestamp(data.get("registrationDate")),
            registrator=name or registrator.get("userId", ""),
        )


@dataclass
class OpenbisExperiment:
    code: str
    perm_id: str
    type_code: str
    identifier: str
    space: str = ""

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "OpenbisExperiment":
        return cls(
            code=data.get("code", ""),
            perm_id=_nested(data, "permId", "permId", default=""),
            type_code=_nested(data, "type", "code", default=""),
            identifier=_nested(data, "identifier", "identifier", default=""),
            space=_nested(data, "project", "space", "code", default=""),
        )


@dataclass
class OpenbisExperimentWithDescendants:
    """一个实验及其样本、数据集和数据集文件"""
    experiment: OpenbisExperiment
    samples: List[OpenbisSample] = field(default_factory=list)
    datasets: List[OpenbisDataset] = field(default_factory=list)
    files_by_dataset: Dict[str, List[DataSetFile]] = field(default_factory=dict)

    def get_files_for_dataset(self, dataset_code: str) -> List[DataSetFile]:
        return self.files_by_dataset.get(dataset_code, [])
