"""版本比较

基于 packaging.version，兼容 "v1.2.3" 这类 git 标签前缀。
无法解析的版本号退化为字符串比较，保证排序总是确定的。
"""

from __future__ import annotations

import functools

from packaging import version as pkg_version

LATEST = "latest"


def normalize(value: str) -> str:
    """去掉 git 标签常见的 v 前缀"""
    value = value.strip()
    if value[:1] in ("v", "V") and value[1:2].isdigit():
        return value[1:]
    return value


def compare_versions(left: str, right: str) -> int:
    """比较两个版本号，返回 -1 / 0 / 1"""
    a, b = normalize(left), normalize(right)
    try:
        va, vb = pkg_version.parse(a), pkg_version.parse(b)
    except pkg_version.InvalidVersion:
        return (a > b) - (a < b)
    if va > vb:
        return 1
    if va < vb:
        return -1
    return 0


def versions_equal(left: str, right: str) -> bool:
    return compare_versions(left, right) == 0


def higher_version(left: str, right: str) -> str:
    """返回两者中较高的版本（相等时保留 left）"""
    return right if compare_versions(right, left) > 0 else left


def sort_versions(values: list[str]) -> list[str]:
    """按版本号升序排序"""
    return sorted(values, key=functools.cmp_to_key(compare_versions))


def latest_of(values: list[str]) -> str | None:
    if not values:
        return None
    return sort_versions(values)[-1]
