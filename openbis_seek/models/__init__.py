# openbis_seek/models/__init__.py
"""
数据模型：openBIS侧只读模型、SEEK侧ISA模型，以及传输记录表
"""

from .openbis import (
    OpenbisExperiment,
    OpenbisExperimentWithDescendants,
    OpenbisSample,
    OpenbisDataset,
    DataSetFile,
    SampleType,
)
from .isa import (
    SeekStructure,
    ISAAssay,
    ISASample,
    ISASampleType,
    GenericSeekAsset,
    AssayWithQueuedAssets,
    AssetToUpload,
)
from .database import get_engine, get_session
from .transfer_record import TransferRecord

__all__ = [
    # openBIS
    'OpenbisExperiment',
    'OpenbisExperimentWithDescendants',
    'OpenbisSample',
    'OpenbisDataset',
    'DataSetFile',
    'SampleType',

    # SEEK
    'SeekStructure',
    'ISAAssay',
    'ISASample',
    'ISASampleType',
    'GenericSeekAsset',
    'AssayWithQueuedAssets',
    'AssetToUpload',

    # 数据库
    'get_engine',
    'get_session',
    'TransferRecord',
]
