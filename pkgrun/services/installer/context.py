"""单次安装运行的上下文

递归安装依赖时显式传递，记录本次运行中已处理的包和依赖，
避免菱形依赖重复安装以及依赖环导致的无限递归。
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class InstallContext:
    installed: dict[str, str] = field(default_factory=dict)
    pending: set[str] = field(default_factory=set)
    dependencies: set[str] = field(default_factory=set)

    @staticmethod
    def package_key(package: str, version: str) -> str:
        return f"installed.{package}={version}"

    @staticmethod
    def dependency_key(name: str, version: str) -> str:
        return f"dependency_installed.{name}={version or 'latest'}"

    def is_installed(self, package: str, version: str) -> bool:
        return self.package_key(package, version) in self.installed

    def is_processed(self, package: str, version: str) -> bool:
        """已安装完成，或正在安装（依赖环上再次遇到）"""
        key = self.package_key(package, version)
        return key in self.installed or key in self.pending

    def mark_pending(self, package: str, version: str) -> None:
        self.pending.add(self.package_key(package, version))

    def mark_installed(self, package: str, version: str) -> None:
        key = self.package_key(package, version)
        self.pending.discard(key)
        self.installed[key] = f"{package}={version}"

    def is_dependency_processed(self, name: str, version: str) -> bool:
        return self.dependency_key(name, version) in self.dependencies

    def mark_dependency(self, name: str, version: str) -> None:
        self.dependencies.add(self.dependency_key(name, version))
