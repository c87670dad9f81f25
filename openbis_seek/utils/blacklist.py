# openbis_seek/utils/blacklist.py
"""
黑名单文件解析：每行一个编码，去除首尾空白、跳过空行，
按编码格式（正则）校验后以集合形式交给翻译器。
"""

import re
from pathlib import Path
from typing import Optional, Pattern, Set, Union

from openbis_seek.exceptions import ValidationError

# openBIS数据集编码形如 20240702093837370-684137
DATASET_CODE_PATTERN = r"^\d{17}-\d+$"
SAMPLE_CODE_PATTERN = r"^[A-Za-z0-9_.\-]+$"


def parse_blacklist(
    blacklist_file: Optional[Union[str, Path]],
    code_pattern: Optional[Union[str, Pattern]] = None,
    kind: str = "dataset",
) -> Set[str]:
    """
    读取黑名单文件

    Args:
        blacklist_file: 黑名单文件路径，为None或空时返回空集合
        code_pattern: 编码格式正则，为None时不校验格式
        kind: 编码种类，仅用于错误提示

    Returns:
        编码集合

    Raises:
        ValidationError: 文件不存在/不可读，或存在格式不合法的编码
    """
    if not blacklist_file:
        return set()

    path = Path(blacklist_file)
    try:
        with open(path, "r", encoding="utf-8") as f:
            codes = {line.strip() for line in f if line.strip()}
    except OSError as e:
        raise ValidationError(f"{path} 不存在或无法读取") from e

    if code_pattern is not None:
        pattern = re.compile(code_pattern) if isinstance(code_pattern, str) else code_pattern
        invalid = sorted(code for code in codes if not pattern.fullmatch(code))
        if invalid:
            raise ValidationError(
                f"黑名单文件 {path} 中存在不合法的{kind}编码：{invalid}，请确认使用的是有效的{kind}编码"
            )
    return codes
