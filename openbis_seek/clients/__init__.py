"""openBIS / SEEK HTTP客户端"""

from .openbis_client import OpenbisClient
from .seek_client import SeekClient

__all__ = [
    "OpenbisClient",
    "SeekClient",
]
