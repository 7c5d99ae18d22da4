"""锁文件内存模型

数据类:
- DependencyEntry: 已安装版本记录的依赖快照（记录解析后的具体版本）
- VersionEntry: 单个已安装版本 {位置, 依赖, 执行单元}
- PackageEntry: 包名 → 版本表，跟踪最新版本
- PackageLock: 包名 → PackageEntry，负责增删查和依赖树计算

持久化由 services.lock_store.PackageLockStore 负责，这里只有纯内存操作。
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from pkgrun.core.models import Dependency, DependencySourceType, Package
from pkgrun.core.versions import LATEST, latest_of

logger = logging.getLogger(__name__)


@dataclass
class DependencyEntry:
    name: str
    version: str
    source_type: str = DependencySourceType.REMOTE.value
    source: str = ""

    @classmethod
    def from_dependency(cls, dependency: Dependency, resolved_version: str = "") -> DependencyEntry:
        return cls(
            name=dependency.name,
            version=resolved_version or dependency.version or LATEST,
            source_type=dependency.source_type.value,
            source=dependency.source,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name, "version": self.version,
            "source_type": self.source_type, "source": self.source,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DependencyEntry:
        return cls(
            name=data["name"],
            version=str(data.get("version") or LATEST),
            source_type=data.get("source_type", DependencySourceType.REMOTE.value),
            source=data.get("source", ""),
        )


@dataclass
class VersionEntry:
    version: str
    location: str
    dependencies: list[DependencyEntry] = field(default_factory=list)
    execution_units: list[str] = field(default_factory=list)
    main_execution_policy: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "location": self.location,
            "dependencies": [d.to_dict() for d in self.dependencies],
            "execution_units": list(self.execution_units),
            "main_execution_policy": self.main_execution_policy,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> VersionEntry:
        return cls(
            version=str(data["version"]),
            location=data.get("location", ""),
            dependencies=[DependencyEntry.from_dict(d) for d in data.get("dependencies") or []],
            execution_units=list(data.get("execution_units") or []),
            main_execution_policy=data.get("main_execution_policy"),
        )


@dataclass
class PackageEntry:
    name: str
    versions: dict[str, VersionEntry] = field(default_factory=dict)
    latest_version: str = ""
    update_source: str = ""

    def refresh_latest(self) -> None:
        self.latest_version = latest_of(list(self.versions)) or ""

    def get_version(self, version: str) -> VersionEntry | None:
        if version == LATEST:
            version = self.latest_version
        return self.versions.get(version)

    def to_dict(self) -> dict[str, Any]:
        return {
            "latest_version": self.latest_version,
            "update_source": self.update_source,
            "versions": {v: e.to_dict() for v, e in self.versions.items()},
        }

    @classmethod
    def from_dict(cls, name: str, data: dict[str, Any]) -> PackageEntry:
        entry = cls(
            name=name,
            versions={
                str(v): VersionEntry.from_dict(e)
                for v, e in (data.get("versions") or {}).items()
            },
            update_source=data.get("update_source") or "",
        )
        entry.refresh_latest()
        return entry


class PackageLock:
    """已安装包的内存索引"""

    def __init__(self, packages: dict[str, PackageEntry] | None = None) -> None:
        self.packages: dict[str, PackageEntry] = packages or {}

    # ---- 修改 ----

    def add_package(
        self,
        package: Package,
        location: str,
        dependencies: list[DependencyEntry] | None = None,
    ) -> VersionEntry:
        """登记一个包版本，同版本已存在时覆盖"""
        if dependencies is None:
            dependencies = [DependencyEntry.from_dependency(d) for d in package.dependencies]
        entry = self.packages.setdefault(package.name, PackageEntry(name=package.name))
        if package.update_source is not None:
            entry.update_source = package.update_source.source
        version_entry = VersionEntry(
            version=package.version,
            location=location,
            dependencies=dependencies,
            execution_units=[u.name for u in package.execution_units],
            main_execution_policy=package.main_execution_policy,
        )
        entry.versions[package.version] = version_entry
        entry.refresh_latest()
        logger.debug("锁文件登记: %s=%s", package.name, package.version)
        return version_entry

    def remove_package_version(self, name: str, version: str) -> bool:
        """删除一个版本；删除最后一个版本时连同包条目一起删除"""
        entry = self.packages.get(name)
        if entry is None or version not in entry.versions:
            return False
        del entry.versions[version]
        if not entry.versions:
            del self.packages[name]
        else:
            entry.refresh_latest()
        return True

    def remove_package(self, name: str) -> bool:
        return self.packages.pop(name, None) is not None

    # ---- 查询 ----

    def get_package(self, name: str) -> PackageEntry | None:
        return self.packages.get(name)

    def get_version(self, name: str, version: str) -> VersionEntry | None:
        entry = self.packages.get(name)
        if entry is None:
            return None
        return entry.get_version(version)

    def package_exists(self, name: str, version: str = "") -> bool:
        """version 为空或 latest 时只要求包已安装任一版本"""
        entry = self.packages.get(name)
        if entry is None:
            return False
        if not version or version == LATEST:
            return bool(entry.versions)
        return version in entry.versions

    def get_packages(self) -> list[str]:
        return sorted(self.packages)

    def get_package_tree(self, package: str | None = None) -> dict[str, dict]:
        """计算依赖树: {"name=version": {依赖子树}}

        package 可以是 None（全部）、"name"（该包所有版本）或 "name=version"。
        没有依赖的版本对应空字典；依赖环在再次遇到时截断为空字典。
        """
        roots: list[tuple[str, str]] = []
        if package is None:
            for name in self.get_packages():
                roots.extend((name, v) for v in self.packages[name].versions)
        else:
            name, _, version = package.partition("=")
            entry = self.packages.get(name)
            if entry is not None:
                if version:
                    resolved = entry.get_version(version)
                    if resolved is not None:
                        roots.append((name, resolved.version))
                else:
                    roots.extend((name, v) for v in entry.versions)

        return {f"{n}={v}": self._subtree(n, v, frozenset()) for n, v in roots}

    def _subtree(self, name: str, version: str, visiting: frozenset[str]) -> dict[str, dict]:
        key = f"{name}={version}"
        entry = self.get_version(name, version)
        if entry is None or key in visiting:
            return {}
        visiting = visiting | {key}
        tree: dict[str, dict] = {}
        for dep in entry.dependencies:
            dep_entry = self.get_version(dep.name, dep.version)
            if dep_entry is None:
                logger.warning("依赖树中缺失的依赖: %s=%s (被 %s 引用)", dep.name, dep.version, key)
                continue
            tree[f"{dep.name}={dep_entry.version}"] = self._subtree(dep.name, dep_entry.version, visiting)
        return tree

    def get_missing_dependencies(self) -> list[tuple[str, DependencyEntry]]:
        """返回 (引用方 name=version, 依赖) 列表，依赖目标未在锁文件中"""
        missing: list[tuple[str, DependencyEntry]] = []
        for name in self.get_packages():
            for version, entry in self.packages[name].versions.items():
                for dep in entry.dependencies:
                    if self.get_version(dep.name, dep.version) is None:
                        missing.append((f"{name}={version}", dep))
        return missing

    # ---- 序列化 ----

    def to_dict(self) -> dict[str, Any]:
        return {"packages": {n: e.to_dict() for n, e in self.packages.items()}}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PackageLock:
        raw = data.get("packages") or {}
        if not isinstance(raw, dict):
            raise ValueError("packages 字段必须是映射")
        return cls({str(n): PackageEntry.from_dict(str(n), e) for n, e in raw.items()})
