"""openBIS -> SEEK 元数据与数据同步工具"""

__version__ = "0.1.0"
