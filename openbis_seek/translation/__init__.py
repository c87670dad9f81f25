"""类型映射与翻译：openBIS对象 -> SEEK（ISA）对象"""

from .type_mapping import MappingKind, TypeMappingRegistry
from .translator import OpenbisSeekTranslator

__all__ = [
    "MappingKind",
    "TypeMappingRegistry",
    "OpenbisSeekTranslator",
]
