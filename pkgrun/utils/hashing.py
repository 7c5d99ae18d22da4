"""定长哈希工具

包 ID（包名 + 版本）和单元 ID（单元名）都由此生成：
纯函数、定长、只含 [0-9a-f]，可直接作为文件名使用。
"""

from __future__ import annotations

import hashlib

DIGEST_SIZE = 16  # 32 位十六进制


def fixed_hash(text: str) -> str:
    """返回 text 的 32 位十六进制 blake2b 摘要"""
    return hashlib.blake2b(text.encode("utf-8"), digest_size=DIGEST_SIZE).hexdigest()


def package_id(package: str, version: str) -> str:
    """包名与版本直接拼接后取哈希"""
    return fixed_hash(package + version)


def unit_id(name: str) -> str:
    return fixed_hash(name)
