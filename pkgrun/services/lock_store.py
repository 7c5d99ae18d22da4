"""锁文件存储

职责:
- 加载 / 缓存 / 持久化 PackageLock（增删查委托给 core.lock.PackageLock）
- 写入前校验 system 权限
- 保存后触发符号链接注册表同步
- 用建议性文件锁串行化 读取 → 修改 → 落盘 序列
"""

from __future__ import annotations

import contextlib
import logging
from collections.abc import Callable, Iterator
from pathlib import Path

import yaml

from pkgrun.core.exceptions import LockStoreError, PrivilegeError
from pkgrun.core.lock import PackageLock
from pkgrun.core.models import Scope
from pkgrun.core.privilege import ScopeResolver, require_system, resolve_scope
from pkgrun.utils.filelock import advisory_lock
from pkgrun.utils.yaml_io import load_document, save_yaml

logger = logging.getLogger(__name__)


class LockCache:
    """进程内锁文件缓存，按锁文件路径索引"""

    def __init__(self) -> None:
        self._entries: dict[str, PackageLock] = {}

    def get(self, path: Path) -> PackageLock | None:
        return self._entries.get(str(path))

    def put(self, path: Path, lock: PackageLock) -> None:
        self._entries[str(path)] = lock

    def invalidate(self, path: Path) -> None:
        self._entries.pop(str(path), None)

    def clear(self) -> None:
        self._entries.clear()


_default_cache = LockCache()


def get_lock_cache() -> LockCache:
    return _default_cache


class PackageLockStore:
    """已安装包的权威记录"""

    def __init__(
        self,
        lock_file: str = "",
        *,
        scope_resolver: ScopeResolver = resolve_scope,
        cache: LockCache | None = None,
        on_save: Callable[[], None] | None = None,
    ) -> None:
        if not lock_file:
            from pkgrun.core.config import get_config
            lock_file = get_config().lock_file
        self.lock_file = Path(lock_file)
        self._scope_resolver = scope_resolver
        self._cache = cache if cache is not None else get_lock_cache()
        self._on_save = on_save
        self._lock: PackageLock | None = None
        self._depth = 0

    def set_on_save(self, callback: Callable[[], None] | None) -> None:
        self._on_save = callback

    def load(self) -> PackageLock:
        """读取锁文件（优先使用进程内缓存），文件不存在或为空时返回空锁"""
        cached = self._cache.get(self.lock_file)
        if cached is not None:
            self._lock = cached
            return cached

        try:
            document = load_document(self.lock_file)
        except (yaml.YAMLError, ValueError, OSError) as e:
            raise LockStoreError(f"无法读取锁文件 {self.lock_file}: {e}") from e

        if document is None:
            lock = PackageLock()
        elif not isinstance(document, dict):
            raise LockStoreError(f"锁文件格式无效: {self.lock_file}")
        else:
            try:
                lock = PackageLock.from_dict(document)
            except (KeyError, TypeError, ValueError, AttributeError) as e:
                raise LockStoreError(f"锁文件内容损坏 {self.lock_file}: {e}") from e

        self._lock = lock
        self._cache.put(self.lock_file, lock)
        logger.debug("锁文件已加载: %s (%d 个包)", self.lock_file, len(lock.packages))
        return lock

    def save(self) -> None:
        """持久化锁文件，未加载时不做任何事"""
        require_system(self._scope_resolver, "写入锁文件")
        if self._lock is None:
            return
        with self._guard():
            save_yaml(self.lock_file, self._lock.to_dict())
        self._cache.put(self.lock_file, self._lock)
        logger.debug("锁文件已保存: %s", self.lock_file)
        if self._on_save is not None:
            self._on_save()

    def construct_lock_file(self) -> PackageLock:
        """加载锁文件，加载失败时从空锁重新开始；system 作用域下确保文件存在"""
        try:
            lock = self.load()
        except LockStoreError as e:
            logger.warning("锁文件无法加载，重新初始化: %s", e)
            lock = PackageLock()
            self._lock = lock
            self._cache.put(self.lock_file, lock)
        if not self.lock_file.exists() and self._scope_resolver() == Scope.SYSTEM:
            with self._guard():
                save_yaml(self.lock_file, lock.to_dict())
        return lock

    def get_package_lock(self) -> PackageLock:
        if self._lock is not None:
            return self._lock
        return self.load()

    @contextlib.contextmanager
    def mutation(self) -> Iterator[PackageLock]:
        """持有文件锁并从磁盘重新加载，用于完整的 读取 → 修改 → 落盘 序列（可重入）"""
        if self._depth:
            self._depth += 1
            try:
                yield self.get_package_lock()
            finally:
                self._depth -= 1
            return

        if self._scope_resolver() != Scope.SYSTEM:
            raise PrivilegeError("修改锁文件需要 system 权限")
        with advisory_lock(self.lock_file):
            self._depth = 1
            try:
                self._cache.invalidate(self.lock_file)
                self._lock = None
                yield self.load()
            finally:
                self._depth = 0

    def _guard(self) -> contextlib.AbstractContextManager:
        if self._depth:
            return contextlib.nullcontext()
        return advisory_lock(self.lock_file)
