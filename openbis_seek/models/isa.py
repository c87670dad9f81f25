# openbis_seek/models/isa.py
"""
SEEK侧（ISA模型）的数据结构，以及由翻译器生成的SeekStructure

to_json()方法生成SEEK JSON:API请求体中的data节点。
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from openbis_seek.models.openbis import DataSetFile


class AttributeKind(str, Enum):
    """样本属性值的种类"""
    STRING = "string"
    DATE = "date"
    LINK = "link"


@dataclass(frozen=True)
class AttributeValue:
    value: str
    kind: AttributeKind = AttributeKind.STRING


@dataclass(frozen=True)
class SampleAttributeType:
    """SEEK的样本属性类型：id、标题、基础类型"""
    seek_id: str
    title: str
    base_type: str


@dataclass(frozen=True)
class SampleAttribute:
    title: str
    attribute_type: SampleAttributeType
    is_title: bool = False
    required: bool = False

    def to_json(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "sample_attribute_type": {"id": self.attribute_type.seek_id},
            "is_title": self.is_title,
            "required": self.required,
        }


def _relationship(resource_type: str, ids: List[str]) -> Dict[str, Any]:
    return {"data": [{"id": str(i), "type": resource_type} for i in ids]}


@dataclass
class ISASampleType:
    title: str
    title_attribute: SampleAttribute
    registration_date_attribute: SampleAttribute
    project_id: str
    attributes: List[SampleAttribute] = field(default_factory=list)

    def add_sample_attribute(self, attribute: SampleAttribute) -> None:
        self.attributes.append(attribute)

    def to_json(self) -> Dict[str, Any]:
        sample_attributes = [self.title_attribute, self.registration_date_attribute] + self.attributes
        return {
            "type": "sample_types",
            "attributes": {
                "title": self.title,
                "sample_attributes": [a.to_json() for a in sample_attributes],
            },
            "relationships": {"projects": _relationship("projects", [self.project_id])},
        }


@dataclass
class ISAAssay:
    title: str
    study_id: str
    assay_class: str
    assay_type_uri: str
    description: str = ""

    def to_json(self, sample_ids: Optional[List[str]] = None) -> Dict[str, Any]:
        relationships: Dict[str, Any] = {
            "study": {"data": {"id": str(self.study_id), "type": "studies"}},
        }
        if sample_ids is not None:
            relationships["samples"] = _relationship("samples", sample_ids)
        return {
            "type": "assays",
            "attributes": {
                "title": self.title,
                "description": self.description,
                "assay_class": {"key": self.assay_class},
                "assay_type": {"uri": self.assay_type_uri},
            },
            "relationships": relationships,
        }


@dataclass(eq=False)
class ISASample:
    title: str
    attribute_map: Dict[str, AttributeValue]
    sample_type_id: str
    project_ids: List[str]

    def attribute_values(self) -> Dict[str, str]:
        """属性表的纯字符串形式（提交给SEEK的attribute_map）"""
        return {key: attr.value for key, attr in self.attribute_map.items()}

    def to_json(self) -> Dict[str, Any]:
        return {
            "type": "samples",
            "attributes": {"attribute_map": self.attribute_values()},
            "relationships": {
                "projects": _relationship("projects", self.project_ids),
                "sample_type": {"data": {"id": str(self.sample_type_id), "type": "sample_types"}},
            },
        }


class DatasetLinkKind(str, Enum):
    """数据集链接的用途：可下载（数据会上传到SEEK）或仅作引用"""
    DOWNLOAD = "download"
    REFERENCE = "reference"


@dataclass(eq=False)
class GenericSeekAsset:
    asset_type: str
    title: str
    file_path: str
    project_ids: List[str]
    file_length: int
    dataset_link: str = ""
    link_kind: DatasetLinkKind = DatasetLinkKind.REFERENCE
    data_format_annotations: List[str] = field(default_factory=list)

    @property
    def file_name(self) -> str:
        return self.file_path.rstrip("/").split("/")[-1]

    def set_dataset_link(self, link: str, transfer_data: bool) -> None:
        self.dataset_link = link
        self.link_kind = DatasetLinkKind.DOWNLOAD if transfer_data else DatasetLinkKind.REFERENCE

    def to_json(self, assay_ids: Optional[List[str]] = None) -> Dict[str, Any]:
        # 不上传数据时，content blob直接指向openBIS数据集链接
        if self.link_kind == DatasetLinkKind.DOWNLOAD:
            content_blob = {"original_filename": self.file_name, "content_type": "application/octet-stream"}
            description = f"openBIS dataset: {self.dataset_link}"
        else:
            content_blob = {"original_filename": self.file_name, "url": self.dataset_link, "make_local_copy": False}
            description = f"openBIS dataset (reference only): {self.dataset_link}"
        attributes: Dict[str, Any] = {
            "title": self.title,
            "description": description,
            "content_blobs": [content_blob],
        }
        if self.data_format_annotations:
            attributes["data_format_annotations"] = list(self.data_format_annotations)
        relationships: Dict[str, Any] = {"projects": _relationship("projects", self.project_ids)}
        if assay_ids:
            relationships["assays"] = _relationship("assays", assay_ids)
        return {"type": self.asset_type, "attributes": attributes, "relationships": relationships}


class SeekStructure:
    """
    翻译结果：一个assay及其openBIS实验标识、样本和资产

    样本按openBIS样本标识存放（标识唯一且不可变）；资产与其来源文件成对存放。
    """

    def __init__(self, assay: ISAAssay, openbis_reference: str):
        self.assay = assay
        self.openbis_reference = openbis_reference
        self._samples: Dict[str, ISASample] = {}
        self._assets: List[Tuple[GenericSeekAsset, DataSetFile]] = []

    def add_sample(self, sample: ISASample, openbis_reference: str) -> None:
        self._samples[openbis_reference] = sample

    def add_asset(self, asset: GenericSeekAsset, file: DataSetFile) -> None:
        self._assets.append((asset, file))

    def get_assay_with_openbis_reference(self) -> Tuple[ISAAssay, str]:
        return self.assay, self.openbis_reference

    def get_samples_with_openbis_reference(self) -> Dict[str, ISASample]:
        return dict(self._samples)

    def get_assets_with_files(self) -> List[Tuple[GenericSeekAsset, DataSetFile]]:
        return list(self._assets)


@dataclass(frozen=True)
class AssetToUpload:
    """已在SEEK创建、还需要上传内容的资产"""
    blob_endpoint: str
    file_path: str
    dataset_code: str


@dataclass
class AssayWithQueuedAssets:
    assay_endpoint: str
    assets: List[AssetToUpload] = field(default_factory=list)
