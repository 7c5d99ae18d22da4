"""领域协议定义

集中定义安装器与外部协作方之间的接口契约（Protocol），
上层依赖抽象而非具体实现，测试可注入任意满足协议的对象。

使用 typing.Protocol 而非 ABC，使得现有类无需修改继承关系即可满足协议。
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Protocol

from pkgrun.core.models import Component, InstallationPaths, Package, RemoteSource, Resource


# =========================================================================
# 包容器
# =========================================================================

class PackageReader(Protocol):
    """包容器读取器: 文件路径 → 已解析的 Package"""

    def read(self, path: str | Path) -> Package:
        ...


# =========================================================================
# 安装策略
# =========================================================================

class InstallerStrategy(Protocol):
    """按编译扩展标签选择的安装策略"""

    def pre_install(self, paths: InstallationPaths) -> None:
        ...

    def post_install(self, paths: InstallationPaths) -> None:
        ...

    def process_component(self, component: Component) -> bytes | None:
        """返回要写入 source 目录的内容，None 或空表示跳过"""
        ...

    def process_resource(self, resource: Resource) -> bytes | None:
        ...


# =========================================================================
# 远程源
# =========================================================================

class SourceRegistry(Protocol):
    """远程源注册表: 名称 → RemoteSource"""

    def get(self, name: str) -> RemoteSource | None:
        ...

    def exists(self, name: str) -> bool:
        ...

    def add(self, source: RemoteSource) -> Any:
        ...


class PackageFetcher(Protocol):
    """远程获取: 依赖定位串 → 可安装的包文件路径"""

    def fetch(
        self, source: str, credential: Any = None, options: Any = (),
    ) -> Path:
        ...
