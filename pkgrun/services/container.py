"""服务容器：统一依赖注入

所有服务通过容器获取，同一容器内的实例共享状态（锁文件缓存等）。
CLI 层通过 get_container() 获取服务，而非直接 import 构造。

依赖关系图（→ 表示依赖）:
  installer → lock_store, units, symlinks, sources, fetcher
  symlinks  → lock_store, units
  fetcher   → sources
  lock_store.save() 之后触发 symlinks.sync()

用法:
    container = ServiceContainer(config=Config.rooted("/tmp/pkgrun"))
    container.installer.install("foo.pkg")
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pkgrun.core.config import Config
    from pkgrun.core.privilege import ScopeResolver
    from pkgrun.services.fetch.cascade import RemoteFetchCascade
    from pkgrun.services.installer.installer import PackageInstaller
    from pkgrun.services.lock_store import PackageLockStore
    from pkgrun.services.sources import RemoteSourceRegistry
    from pkgrun.services.symlinks import SymlinkRegistry
    from pkgrun.services.units.registry import ExecutionUnitRegistry

logger = logging.getLogger(__name__)


class ServiceContainer:
    """懒加载服务容器"""

    def __init__(
        self,
        config: Config | None = None,
        scope_resolver: ScopeResolver | None = None,
    ) -> None:
        self._instances: dict[str, object] = {}
        if config is None:
            from pkgrun.core.config import get_config
            config = get_config()
        if scope_resolver is None:
            from pkgrun.core.privilege import resolve_scope
            scope_resolver = resolve_scope
        self._config = config
        self._scope_resolver = scope_resolver

    @property
    def config(self) -> Config:
        return self._config

    @property
    def lock_store(self) -> PackageLockStore:
        if "lock_store" not in self._instances:
            from pkgrun.services.lock_store import PackageLockStore
            store = PackageLockStore(
                self._config.lock_file, scope_resolver=self._scope_resolver,
            )
            # 保存时再取 symlinks，避免与 symlinks 的构造互相递归
            store.set_on_save(lambda: self.symlinks.sync())
            self._instances["lock_store"] = store
        return self._instances["lock_store"]  # type: ignore[return-value]

    @property
    def units(self) -> ExecutionUnitRegistry:
        if "units" not in self._instances:
            from pkgrun.services.units.registry import ExecutionUnitRegistry
            self._instances["units"] = ExecutionUnitRegistry(
                self._config.runner_dir,
                program=self._config.program,
                default_timeout=self._config.default_timeout,
                scope_resolver=self._scope_resolver,
            )
        return self._instances["units"]  # type: ignore[return-value]

    @property
    def symlinks(self) -> SymlinkRegistry:
        if "symlinks" not in self._instances:
            from pkgrun.services.symlinks import SymlinkRegistry
            self._instances["symlinks"] = SymlinkRegistry(
                self._config.symlink_file,
                bin_dir=self._config.bin_dir,
                lock_store=self.lock_store,
                units=self.units,
                scope_resolver=self._scope_resolver,
            )
        return self._instances["symlinks"]  # type: ignore[return-value]

    @property
    def sources(self) -> RemoteSourceRegistry:
        if "sources" not in self._instances:
            from pkgrun.services.sources import RemoteSourceRegistry
            self._instances["sources"] = RemoteSourceRegistry(
                self._config.sources_file, scope_resolver=self._scope_resolver,
            )
        return self._instances["sources"]  # type: ignore[return-value]

    @property
    def fetcher(self) -> RemoteFetchCascade:
        if "fetcher" not in self._instances:
            from pkgrun.services.fetch.cascade import RemoteFetchCascade
            self._instances["fetcher"] = RemoteFetchCascade(
                self.sources, self._config.cache_dir,
                http_timeout=self._config.http_timeout,
            )
        return self._instances["fetcher"]  # type: ignore[return-value]

    @property
    def installer(self) -> PackageInstaller:
        if "installer" not in self._instances:
            from pkgrun.services.installer.installer import PackageInstaller
            self._instances["installer"] = PackageInstaller(
                self.lock_store, self.units, self.symlinks, self.sources, self.fetcher,
                packages_dir=str(self._config.packages_dir),
                scope_resolver=self._scope_resolver,
            )
        return self._instances["installer"]  # type: ignore[return-value]


# ---- 全局单例 ----

_global: ServiceContainer | None = None
_global_lock = threading.Lock()


def get_container() -> ServiceContainer:
    """获取全局 ServiceContainer 单例（线程安全）"""
    global _global  # noqa: PLW0603
    if _global is not None:
        return _global
    with _global_lock:
        if _global is None:
            _global = ServiceContainer()
        return _global


def reset_container() -> None:
    """重置全局容器（仅用于测试）"""
    global _global  # noqa: PLW0603
    with _global_lock:
        _global = None
