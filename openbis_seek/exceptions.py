# openbis_seek/exceptions.py
"""
同步流程的异常体系

所有异常均继承自 SyncError，核心模块只负责抛出，不做吞掉或降级处理，
由调用边界（命令行 / 调度器）统一记录日志并终止本次运行。
"""

from typing import List, Optional


class SyncError(Exception):
    """openBIS -> SEEK 同步相关异常的基类"""
    pass


class UnmappedTypeError(SyncError):
    """源类型编码在映射表中没有配置（或配置为空），不允许使用默认值"""

    def __init__(self, kind: str, code: str, hint: str = ""):
        message = f"{kind} 映射中找不到类型 '{code}'"
        if hint:
            message = f"{message}：{hint}"
        super().__init__(message)
        self.kind = kind
        self.code = code


class AmbiguousMatchError(SyncError):
    """按关键字查找目标节点时命中多个候选，需要人工处理"""

    def __init__(self, keyword: str, matches: List[str]):
        super().__init__(
            f"标识 {keyword} 在多个SEEK assay中出现：{matches}，请人工确认后再同步"
        )
        self.keyword = keyword
        self.matches = list(matches)


class TransportError(SyncError):
    """与openBIS或SEEK通信失败（网络、认证、响应格式错误）"""

    def __init__(self, message: str, status_code: Optional[int] = None, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.status_code = status_code
        self.cause = cause


class ValidationError(SyncError):
    """输入校验失败：黑名单格式错误、必填配置缺失等，在任何网络请求之前抛出"""
    pass


class ObjectNotFoundError(SyncError):
    """openBIS中找不到指定的对象"""

    def __init__(self, object_id: str):
        super().__init__(f"openBIS中找不到对象：{object_id}")
        self.object_id = object_id
