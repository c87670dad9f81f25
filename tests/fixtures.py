# tests/fixtures.py
"""测试共用的配置、映射表和openBIS实验数据"""
from datetime import datetime, timezone
from typing import Any, Dict

from openbis_seek.models.openbis import (
    DataSetFile,
    OpenbisDataset,
    OpenbisExperiment,
    OpenbisExperimentWithDescendants,
    OpenbisSample,
    PropertyAssignment,
    SampleType,
)
from openbis_seek.translation.type_mapping import MappingKind, TypeMappingRegistry
from openbis_seek.utils.yaml_config import SyncSettings

EXPERIMENT_PERM_ID = "20240101093837370-1"
DATASET_PERM_ID = "20240102093837370-7"
PARENT_PERM_ID = "20240101093837370-2"
OPENBIS_BASE_URL = "https://openbis.example.org/openbis/"

MAPPING_TABLES: Dict[MappingKind, Dict[str, Any]] = {
    MappingKind.ASSAY_CLASS: {"Q_NGS_MEASUREMENT": "EXP", "BLANK_TYPE": ""},
    MappingKind.ASSAY_TYPE: {
        "Q_NGS_MEASUREMENT": "http://jermontology.org/ontology/JERMOntology#Genomics",
        "BLANK_TYPE": "  ",
    },
    MappingKind.ASSET_TYPE: {"Q_NGS_RAW_DATA": "data_files", "ATTACHMENT": "documents"},
    MappingKind.ATTRIBUTE_TYPE: {
        "VARCHAR": {"seek_id": "4", "seek_title": "String", "seek_type": "String"},
        "DATE": {"seek_id": "1", "seek_title": "Date", "seek_type": "Date"},
        "SAMPLE": {"seek_id": "8", "seek_title": "Web link", "seek_type": "String"},
        "INTEGER": {"seek_id": ""},
    },
}


def make_settings(**overrides) -> SyncSettings:
    values = dict(
        openbis_as_url="https://openbis.example.org",
        openbis_dss_url="https://openbis-dss.example.org",
        openbis_base_url=OPENBIS_BASE_URL,
        openbis_user="reader",
        openbis_password="secret",
        seek_url="https://seek.example.org",
        seek_user="seek_user",
        seek_password="seek_secret",
        default_project="1",
        default_study="2",
        sample_title_attribute="openBIS Name",
        registration_date_attribute="Registration Date",
        mappings_dir="/tmp/mappings",
    )
    values.update(overrides)
    return SyncSettings(**values)


def make_registry() -> TypeMappingRegistry:
    return TypeMappingRegistry(MAPPING_TABLES)


def make_sample_type() -> SampleType:
    return SampleType(
        code="Q_TEST_SAMPLE",
        property_assignments=[
            PropertyAssignment(code="Q_SECONDARY_NAME", label="Secondary name", data_type="VARCHAR"),
            PropertyAssignment(code="PARENT_SAMPLE", label="Parent", data_type="SAMPLE"),
        ],
    )


def make_graph(dataset_type: str = "Q_NGS_RAW_DATA", experiment_type: str = "Q_NGS_MEASUREMENT") -> OpenbisExperimentWithDescendants:
    """实验EXP1：样本S1，数据集D1（一个目录和一个data.csv）"""
    experiment = OpenbisExperiment(
        code="EXP1",
        perm_id=EXPERIMENT_PERM_ID,
        type_code=experiment_type,
        identifier="/SPACE/PROJ/EXP1",
        space="SPACE",
    )
    sample = OpenbisSample(
        code="S1",
        perm_id="20240101093837370-3",
        identifier="/SPACE/S1",
        sample_type=make_sample_type(),
        properties={"Q_SECONDARY_NAME": "liver", "PARENT_SAMPLE": PARENT_PERM_ID},
        registration_date=datetime(2024, 3, 5, 10, 30, tzinfo=timezone.utc),
        space="SPACE",
    )
    dataset = OpenbisDataset(code=DATASET_PERM_ID, type_code=dataset_type, experiment_identifier="/SPACE/PROJ/EXP1")
    files = [
        DataSetFile(path="original", directory=True, file_length=0, dataset_perm_id=DATASET_PERM_ID),
        DataSetFile(path="original/data.csv", directory=False, file_length=120, dataset_perm_id=DATASET_PERM_ID),
    ]
    return OpenbisExperimentWithDescendants(
        experiment=experiment,
        samples=[sample],
        datasets=[dataset],
        files_by_dataset={DATASET_PERM_ID: files},
    )


# 最小可用的config.yaml内容
BASE_CONFIG: Dict[str, Any] = {
    "openbis": {"as_url": "https://openbis.example.org/", "user": "reader", "password": "from-file"},
    "seek": {
        "url": "https://seek.example.org/",
        "user": "seek_user",
        "password": "seek-from-file",
        "default_project": 1,
        "default_study": 2,
        "sample_title_attribute": "openBIS Name",
        "registration_date_attribute": "Registration Date",
    },
    "mappings": {"dir": "./mappings"},
    "logging": {"log_dir": "./logs/", "log_level": "DEBUG"},
}
