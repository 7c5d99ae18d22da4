"""符号链接注册表

包名 → 入口执行单元名 + registered 标志。sync() 根据锁文件协调
<bin_dir> 下的符号链接: 为未注册的条目创建指向最新已安装版本入口脚本的链接，
为已不在锁文件中的包删除链接和条目。已注册但不再指向最新版本入口的链接会重建。
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from pkgrun.core.exceptions import PkgRunError
from pkgrun.core.models import Scope
from pkgrun.core.privilege import ScopeResolver, require_system, resolve_scope
from pkgrun.core.registry import YamlRegistry

if TYPE_CHECKING:
    from pkgrun.services.lock_store import PackageLockStore
    from pkgrun.services.units.registry import ExecutionUnitRegistry

logger = logging.getLogger(__name__)


@dataclass
class SymlinkEntry:
    package: str
    unit: str = "main"
    registered: bool = False

    @property
    def command_name(self) -> str:
        """包名最后一个点分段，如 com.example.foo → foo"""
        return self.package.rsplit(".", 1)[-1]


class SymlinkRegistry(YamlRegistry):
    """符号链接注册表"""

    section_key = "symlinks"
    config_key = "symlink_file"

    def __init__(
        self,
        registry_file: str = "",
        *,
        bin_dir: str = "",
        lock_store: PackageLockStore | None = None,
        units: ExecutionUnitRegistry | None = None,
        scope_resolver: ScopeResolver = resolve_scope,
    ) -> None:
        super().__init__(registry_file)
        if not bin_dir:
            from pkgrun.core.config import get_config
            bin_dir = get_config().bin_dir
        self.bin_dir = Path(bin_dir)
        self.lock_store = lock_store
        self.units = units
        self._scope_resolver = scope_resolver

    def link_path(self, package: str) -> Path:
        return self.bin_dir / SymlinkEntry(package).command_name

    def _unlink(self, package: str) -> None:
        link = self.link_path(package)
        if link.is_symlink() or link.exists():
            link.unlink()
            logger.info("符号链接已删除: %s", link)

    def add(self, package: str, unit: str = "main") -> SymlinkEntry:
        """登记条目；已有条目时先删除旧链接再替换"""
        require_system(self._scope_resolver, f"注册符号链接 ({package})")
        old = self._get_raw(package)
        if old is not None and old.get("registered"):
            self._unlink(package)
        self._put(package, {"unit": unit, "registered": False})
        return SymlinkEntry(package=package, unit=unit)

    def remove(self, package: str) -> bool:
        require_system(self._scope_resolver, f"删除符号链接 ({package})")
        old = self._get_raw(package)
        if old is None:
            return False
        if old.get("registered"):
            self._unlink(package)
        return self._remove(package)

    def exists(self, package: str) -> bool:
        return self._get_raw(package) is not None

    def get(self, package: str) -> SymlinkEntry | None:
        raw = self._get_raw(package)
        if raw is None:
            return None
        return SymlinkEntry(package=package, unit=raw.get("unit", "main"),
                            registered=bool(raw.get("registered")))

    def entries(self) -> list[SymlinkEntry]:
        return [
            SymlinkEntry(package=e["name"], unit=e.get("unit", "main"),
                         registered=bool(e.get("registered")))
            for e in self._list_raw()
        ]

    @staticmethod
    def _points_to(link: Path, target: Path) -> bool:
        return link.is_symlink() and Path(os.readlink(link)) == target

    def sync(self) -> None:
        """根据锁文件协调符号链接，单个条目失败只记录警告"""
        if self.lock_store is None or self.units is None:
            logger.debug("符号链接同步未配置锁文件或执行单元注册表，跳过")
            return
        if self._scope_resolver() != Scope.SYSTEM:
            logger.debug("非 system 作用域，跳过符号链接同步")
            return

        lock = self.lock_store.get_package_lock()
        section = self._section()
        changed = False
        for entry in self.entries():
            try:
                package_entry = lock.get_package(entry.package)
                if package_entry is None or not package_entry.versions:
                    if entry.registered:
                        self._unlink(entry.package)
                    del section[entry.package]
                    changed = True
                    continue
                target = self.units.get_entry_point_path(
                    entry.package, package_entry.latest_version, entry.unit,
                )
                link = self.link_path(entry.package)
                if entry.registered and self._points_to(link, target):
                    continue

                link.parent.mkdir(parents=True, exist_ok=True)
                if link.is_symlink() or link.exists():
                    link.unlink()
                link.symlink_to(target)
                section[entry.package]["registered"] = True
                changed = True
                logger.info("符号链接已创建: %s -> %s", link, target)
            except (PkgRunError, OSError) as e:
                logger.warning("符号链接同步失败 (%s): %s", entry.package, e)
        if changed:
            self._save()
