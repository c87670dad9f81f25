# openbis_seek/translation/translator.py
"""
openBIS -> SEEK 翻译器

把一个openBIS实验（含样本、数据集、文件）转换为SeekStructure，
以及把openBIS样本类型转换为SEEK样本类型。翻译过程不访问网络。
"""

import logging
from typing import Dict, Iterable, Optional, Set, Tuple

from openbis_seek.exceptions import UnmappedTypeError, ValidationError
from openbis_seek.models.isa import (
    AttributeKind,
    AttributeValue,
    GenericSeekAsset,
    ISAAssay,
    ISASample,
    ISASampleType,
    SampleAttribute,
    SeekStructure,
)
from openbis_seek.models.openbis import (
    SAMPLE_DATA_TYPE,
    DataSetFile,
    OpenbisExperimentWithDescendants,
    OpenbisSample,
    SampleType,
)
from openbis_seek.translation.type_mapping import MappingKind, TypeMappingRegistry
from openbis_seek.utils.logging_config import log_skipped_entity
from openbis_seek.utils.yaml_config import SyncSettings

logger = logging.getLogger(__name__)

DATE_FORMAT = "%Y-%m-%d"


class OpenbisSeekTranslator:
    def __init__(self, registry: TypeMappingRegistry, settings: SyncSettings):
        if not settings.sample_title_attribute:
            raise ValidationError("缺少配置项 seek.sample_title_attribute，无法翻译样本")
        self.registry = registry
        self.settings = settings

    def generate_openbis_link(self, entity_type: str, perm_id: str) -> str:
        """生成指向openBIS对象的深链接"""
        return f"{self.settings.openbis_base_url}#entity={entity_type}&permId={perm_id}"

    def translate(
        self,
        graph: OpenbisExperimentWithDescendants,
        sample_type_ids: Dict[str, str],
        dataset_blacklist: Optional[Iterable[str]] = None,
        sample_blacklist: Optional[Iterable[str]] = None,
        transfer_data: bool = False,
    ) -> SeekStructure:
        """
        翻译一个实验及其后代

        Args:
            graph: openBIS实验（含样本、数据集、文件）
            sample_type_ids: SEEK样本类型名称 -> id
            dataset_blacklist: 不传输的数据集编码
            sample_blacklist: 不传输的样本编码
            transfer_data: 是否把文件内容上传到SEEK（决定资产链接的用途）

        Returns:
            SeekStructure

        Raises:
            UnmappedTypeError: 实验类型、样本类型或数据集类型没有映射
        """
        dataset_blacklist = set(dataset_blacklist or ())
        sample_blacklist = set(sample_blacklist or ())

        experiment = graph.experiment
        assay_type = self.registry.resolve(MappingKind.ASSAY_TYPE, experiment.type_code)
        assay_class = self.registry.resolve(MappingKind.ASSAY_CLASS, experiment.type_code)

        assay = ISAAssay(
            title=f"{experiment.code} ({experiment.perm_id})",
            study_id=self.settings.default_study,
            assay_class=assay_class,
            assay_type_uri=assay_type,
        )
        structure = SeekStructure(assay, experiment.identifier)

        for sample in graph.samples:
            if sample.code in sample_blacklist:
                log_skipped_entity("样本", sample.code, logger)
                continue
            structure.add_sample(self._translate_sample(sample, sample_type_ids), sample.identifier)

        dataset_types = {dataset.code: dataset.type_code for dataset in graph.datasets}
        for dataset in graph.datasets:
            if dataset.code in dataset_blacklist:
                log_skipped_entity("数据集", dataset.code, logger)
                continue
            for file in graph.get_files_for_dataset(dataset.code):
                type_code = dataset_types.get(file.dataset_perm_id, dataset.type_code)
                asset = self._file_to_asset(file, type_code, transfer_data)
                if asset is not None:
                    structure.add_asset(asset, file)

        logger.info(
            f"实验 {experiment.identifier} 翻译完成：样本 {len(structure.get_samples_with_openbis_reference())} 个，"
            f"资产 {len(structure.get_assets_with_files())} 个"
        )
        return structure

    def _translate_sample(self, sample: OpenbisSample, sample_type_ids: Dict[str, str]) -> ISASample:
        code_to_label, linking_codes = self._inspect_sample_type(sample.sample_type)

        attributes: Dict[str, AttributeValue] = {}
        for code, value in sample.properties.items():
            if code in linking_codes:
                attribute = AttributeValue(self.generate_openbis_link("SAMPLE", str(value)), AttributeKind.LINK)
            else:
                attribute = AttributeValue("" if value is None else str(value))
            label = code_to_label.get(code)
            if label is None:
                logger.warning(f"样本 {sample.identifier} 的属性 {code} 未在样本类型 {sample.sample_type.code} 中声明，使用属性编码作为属性名")
                label = code
            attributes[label] = attribute

        attributes[self.settings.sample_title_attribute] = AttributeValue(sample.identifier)
        registration_date = sample.registration_date.strftime(DATE_FORMAT) if sample.registration_date else ""
        attributes[self.settings.registration_date_attribute] = AttributeValue(registration_date, AttributeKind.DATE)

        sample_type_id = sample_type_ids.get(sample.sample_type.code)
        if not sample_type_id:
            raise UnmappedTypeError(
                "sample_type", sample.sample_type.code,
                "SEEK中不存在同名样本类型，请先执行 sample-type-transfer"
            )

        return ISASample(
            title=sample.identifier,
            attribute_map=attributes,
            sample_type_id=str(sample_type_id),
            project_ids=[self.settings.default_project],
        )

    @staticmethod
    def _inspect_sample_type(sample_type: SampleType) -> Tuple[Dict[str, str], Set[str]]:
        """属性编码 -> 显示名称，以及引用其他样本的属性编码"""
        code_to_label: Dict[str, str] = {}
        linking_codes: Set[str] = set()
        for assignment in sample_type.property_assignments:
            code_to_label[assignment.code] = assignment.label
            if assignment.data_type == SAMPLE_DATA_TYPE:
                linking_codes.add(assignment.code)
        return code_to_label, linking_codes

    def _file_to_asset(self, file: DataSetFile, dataset_type: str, transfer_data: bool) -> Optional[GenericSeekAsset]:
        # 目录和空路径不生成资产
        if not file.path.strip() or file.directory:
            return None

        asset = GenericSeekAsset(
            asset_type=self.registry.resolve(MappingKind.ASSET_TYPE, dataset_type),
            title=f"{file.dataset_perm_id}: {file.file_name}",
            file_path=file.path,
            project_ids=[self.settings.default_project],
            file_length=file.file_length,
        )
        asset.set_dataset_link(self.generate_openbis_link("DATA_SET", file.dataset_perm_id), transfer_data)

        annotation = self.registry.data_format_for_file(file.file_name)
        if annotation:
            asset.data_format_annotations = [annotation]
        return asset

    def translate_sample_type(self, sample_type: SampleType) -> ISASampleType:
        """
        openBIS样本类型 -> SEEK样本类型

        固定包含标题属性（VARCHAR）和登记日期属性（DATE），其余属性按属性定义逐个转换
        """
        if not self.settings.default_project:
            raise ValidationError("缺少配置项 seek.default_project，无法创建样本类型")

        title_attribute = SampleAttribute(
            title=self.settings.sample_title_attribute,
            attribute_type=self.registry.resolve(MappingKind.ATTRIBUTE_TYPE, "VARCHAR"),
            is_title=True,
        )
        date_attribute = SampleAttribute(
            title=self.settings.registration_date_attribute,
            attribute_type=self.registry.resolve(MappingKind.ATTRIBUTE_TYPE, "DATE"),
        )
        isa_type = ISASampleType(
            title=sample_type.code,
            title_attribute=title_attribute,
            registration_date_attribute=date_attribute,
            project_id=self.settings.default_project,
        )
        for assignment in sample_type.property_assignments:
            isa_type.add_sample_attribute(SampleAttribute(
                title=assignment.label,
                attribute_type=self.registry.resolve(MappingKind.ATTRIBUTE_TYPE, assignment.data_type),
            ))
        return isa_type
