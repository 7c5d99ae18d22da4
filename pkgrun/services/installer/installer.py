"""包安装器

职责:
- 安装: 权限校验 → 解析包 → 依赖解析 / 拉取（递归）→ 目录布局 → 元数据
  → 组件 / 资源落盘 → 执行单元注册 → 安装钩子 → 符号链接 → 远程源登记 → 锁文件提交
- 卸载: 单个版本或包的全部版本
- 已安装包查询
"""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
from collections.abc import Iterable
from pathlib import Path
from typing import Any

from pkgrun.core.constants import compile_package_constants
from pkgrun.core.exceptions import (
    AlreadyInstalledError,
    DependencyNotFoundError,
    InstallationError,
    PackageNotFoundError,
    PathNotFoundError,
    PkgRunError,
    UnsupportedError,
)
from pkgrun.core.lock import DependencyEntry, PackageEntry, VersionEntry
from pkgrun.core.models import (
    Credential,
    Dependency,
    DependencySourceType,
    InstallationPaths,
    InstallOption,
    Package,
    RemoteSource,
)
from pkgrun.core.package_file import PackageFile
from pkgrun.core.privilege import ScopeResolver, require_system, resolve_scope
from pkgrun.core.protocols import InstallerStrategy, PackageFetcher, PackageReader, SourceRegistry
from pkgrun.core.versions import LATEST
from pkgrun.services.installer.context import InstallContext
from pkgrun.services.installer.progress import ProgressCallback, ProgressTracker
from pkgrun.services.installer.strategies import get_strategy
from pkgrun.services.lock_store import PackageLockStore
from pkgrun.services.symlinks import SymlinkRegistry
from pkgrun.services.units.registry import ExecutionUnitRegistry
from pkgrun.utils.yaml_io import atomic_write, save_yaml

logger = logging.getLogger(__name__)

# 外部调用（策略、解释器、文件系统）可能抛出的异常
_BEST_EFFORT_ERRORS = (PkgRunError, OSError, subprocess.SubprocessError)


def _parse_options(options: Iterable[InstallOption | str]) -> set[InstallOption]:
    try:
        return {InstallOption(o) for o in options}
    except ValueError as e:
        raise UnsupportedError(f"不支持的安装选项: {e}") from e


class PackageInstaller:
    """包安装 / 卸载 / 查询"""

    def __init__(
        self,
        lock_store: PackageLockStore,
        units: ExecutionUnitRegistry,
        symlinks: SymlinkRegistry,
        sources: SourceRegistry,
        fetcher: PackageFetcher | None = None,
        *,
        reader: PackageReader | None = None,
        packages_dir: str = "",
        scope_resolver: ScopeResolver = resolve_scope,
    ) -> None:
        if not packages_dir:
            from pkgrun.core.config import get_config
            packages_dir = str(get_config().packages_dir)
        self.lock_store = lock_store
        self.units = units
        self.symlinks = symlinks
        self.sources = sources
        self.fetcher = fetcher
        self.reader = reader or PackageFile()
        self.packages_dir = Path(packages_dir)
        self._scope_resolver = scope_resolver

    def installation_paths(self, package: str, version: str) -> InstallationPaths:
        return InstallationPaths(self.packages_dir / f"{package}={version}")

    # =====================================================================
    # 安装
    # =====================================================================

    def install(
        self,
        path: str | Path,
        credential: Credential | None = None,
        options: Iterable[InstallOption | str] = (),
        *,
        context: InstallContext | None = None,
        progress: ProgressCallback | None = None,
    ) -> str:
        """安装包文件，返回包名"""
        require_system(self._scope_resolver, "安装软件包")
        opts = _parse_options(options)
        context = context if context is not None else InstallContext()
        source_path = Path(path)

        if not source_path.exists() or not source_path.is_file():
            raise PathNotFoundError(f"包文件不存在: {source_path}")
        if not os.access(source_path, os.R_OK):
            raise PathNotFoundError(f"包文件不可读: {source_path}")
        package = self.reader.read(source_path)

        if context.is_processed(package.name, package.version):
            logger.debug("本次运行已处理过 %s=%s，跳过", package.name, package.version)
            return package.name

        with self.lock_store.mutation():
            return self._install(package, source_path, credential, opts, context, progress)

    def _install(
        self,
        package: Package,
        source_path: Path,
        credential: Credential | None,
        opts: set[InstallOption],
        context: InstallContext,
        progress: ProgressCallback | None,
    ) -> str:
        name, version = package.name, package.version
        strategy = get_strategy(package.compiler_extension)
        lock = self.lock_store.get_package_lock()
        paths = self.installation_paths(name, version)

        reinstall = lock.package_exists(name, version)
        if reinstall and InstallOption.REINSTALL not in opts:
            raise AlreadyInstalledError(f"{name}={version} 已安装")

        package = compile_package_constants(package, paths)
        context.mark_pending(name, version)

        dependencies = self._process_dependencies(package, source_path, credential, opts, context)

        # 依赖全部就绪后才清理旧版本，清理结果立即落盘
        if reinstall:
            self._preclean(name, version, lock.get_version(name, version))
            lock.remove_package_version(name, version)
            self.lock_store.save()

        logger.info("安装 %s=%s -> %s", name, version, paths.root,
                    extra={"package": name, "version": version})
        tracker = ProgressTracker.for_package(package, progress)

        try:
            for directory in paths.all():
                directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise InstallationError(f"创建安装目录失败: {e}", stage="directories") from e
        tracker.advance("创建安装目录")

        try:
            self._write_metadata(package, paths)
        except (OSError, PkgRunError) as e:
            raise InstallationError(f"写入元数据失败: {e}", stage="metadata") from e
        tracker.advance("写入元数据")

        try:
            strategy.pre_install(paths)
        except _BEST_EFFORT_ERRORS as e:
            raise InstallationError(f"pre_install 阶段失败: {e}", stage="pre_install") from e
        tracker.advance("pre_install")

        for unit_name in package.installer.pre_install if package.installer else []:
            try:
                self._run_hook_unit(package, unit_name)
            finally:
                tracker.advance(f"pre_install 单元 {unit_name}")

        self._write_payloads(package, strategy, paths, tracker)

        for unit in package.execution_units:
            self.units.add_unit(name, version, unit)
            tracker.advance(f"注册执行单元 {unit.name}")

        if package.create_symlink:
            if not package.main_execution_policy:
                raise InstallationError("要求创建符号链接，但未定义主执行策略", stage="symlink")
            self.symlinks.add(name, package.main_execution_policy)

        try:
            strategy.post_install(paths)
        except _BEST_EFFORT_ERRORS as e:
            raise InstallationError(f"post_install 阶段失败: {e}", stage="post_install") from e
        tracker.advance("post_install")

        for unit_name in package.installer.post_install if package.installer else []:
            try:
                self._run_hook_unit(package, unit_name)
            finally:
                tracker.advance(f"post_install 单元 {unit_name}")

        self._register_sources(package, opts)

        lock.add_package(package, str(paths.root), dependencies)
        self.lock_store.save()
        context.mark_installed(name, version)
        logger.info("安装完成: %s=%s", name, version, extra={"package": name, "version": version})
        return name

    def install_from_source(
        self,
        source: str,
        credential: Credential | None = None,
        options: Iterable[InstallOption | str] = (),
        *,
        context: InstallContext | None = None,
    ) -> str:
        """通过远程获取级联得到包文件后安装"""
        options = tuple(options)
        if self.fetcher is None:
            raise InstallationError(f"未配置远程获取，无法安装 {source}", stage="fetch")
        path = self.fetcher.fetch(source, credential, options)
        return self.install(path, credential, options, context=context)

    # ---- 安装步骤 ----

    def _preclean(self, name: str, version: str, entry: VersionEntry | None) -> None:
        """重装前清理旧版本的执行单元和安装目录，失败只记录警告"""
        if entry is None:
            return
        logger.info("重装 %s=%s: 清理旧的安装", name, version)
        for unit_name in entry.execution_units:
            try:
                self.units.remove_unit(name, version, unit_name)
            except _BEST_EFFORT_ERRORS as e:
                logger.warning("清理旧执行单元失败 %s (%s=%s): %s", unit_name, name, version, e)
        self._remove_tree(Path(entry.location))

    def _process_dependencies(
        self,
        package: Package,
        source_path: Path,
        credential: Credential | None,
        opts: set[InstallOption],
        context: InstallContext,
    ) -> list[DependencyEntry]:
        """解析全部依赖并返回锁文件中记录的依赖快照"""
        lock = self.lock_store.get_package_lock()
        skip = InstallOption.SKIP_DEPENDENCIES in opts
        snapshot: list[DependencyEntry] = []

        for dependency in package.dependencies:
            if skip:
                if (dependency.source_type == DependencySourceType.STATIC
                        and not lock.package_exists(dependency.name, dependency.version)):
                    raise DependencyNotFoundError(
                        f"静态链接依赖 {dependency.key} 未安装 (被 {package.name}={package.version} 依赖)"
                    )
            else:
                if (InstallOption.REINSTALL in opts
                        and dependency.source_type != DependencySourceType.STATIC
                        and not context.is_dependency_processed(dependency.name, dependency.version)
                        and lock.package_exists(dependency.name, dependency.version)):
                    self._uninstall_dependency(dependency)
                self._process_dependency(dependency, package, source_path, credential, opts, context)
            snapshot.append(self._snapshot(dependency))
        return snapshot

    def _uninstall_dependency(self, dependency: Dependency) -> None:
        logger.info("重装: 先卸载依赖 %s", dependency.key)
        if dependency.version:
            self.uninstall_package_version(dependency.name, dependency.version)
        else:
            self.uninstall_package(dependency.name)

    def _process_dependency(
        self,
        dependency: Dependency,
        package: Package,
        source_path: Path,
        credential: Credential | None,
        opts: set[InstallOption],
        context: InstallContext,
    ) -> None:
        if context.is_dependency_processed(dependency.name, dependency.version):
            logger.debug("依赖 %s 本次运行已处理，跳过", dependency.key)
            return

        lock = self.lock_store.get_package_lock()
        if lock.package_exists(dependency.name, dependency.version):
            logger.debug("依赖已满足: %s", dependency.key)
            return

        logger.info("安装依赖 %s (被 %s=%s 依赖)", dependency.key, package.name, package.version)
        # 先标记，依赖环再次遇到时直接返回
        context.mark_dependency(dependency.name, dependency.version)

        if dependency.source_type == DependencySourceType.STATIC:
            raise DependencyNotFoundError(
                f"静态链接依赖 {dependency.key} 未安装 (被 {package.name}={package.version} 依赖)"
            )
        if dependency.source_type == DependencySourceType.LOCAL:
            local = source_path.parent / dependency.source
            if not local.exists():
                raise PathNotFoundError(f"本地依赖文件不存在: {local}")
            self.install(local, None, opts, context=context)
        else:
            self.install_from_source(dependency.source, credential, opts, context=context)

    def _snapshot(self, dependency: Dependency) -> DependencyEntry:
        """依赖快照记录锁文件中解析到的具体版本"""
        entry = self.lock_store.get_package_lock().get_version(
            dependency.name, dependency.version or LATEST,
        )
        if entry is None:
            logger.warning("依赖 %s 未出现在锁文件中，按声明版本记录", dependency.key)
            return DependencyEntry.from_dependency(dependency)
        return DependencyEntry.from_dependency(dependency, entry.version)

    def _write_metadata(self, package: Package, paths: InstallationPaths) -> None:
        data = paths.data_path
        save_yaml(data / "assembly.yml", package.assembly.to_dict())
        save_yaml(data / "extension.yml", {"extension": package.compiler_extension})
        save_yaml(data / "constants.yml", dict(package.runtime_constants))
        save_yaml(data / "dependencies.yml", [d.to_dict() for d in package.dependencies])
        PackageFile.save(package, data / "package.pkg")

    def _target(self, paths: InstallationPaths, name: str) -> Path:
        root = paths.source_path.resolve()
        target = (paths.source_path / name).resolve()
        if root not in target.parents:
            raise InstallationError(f"文件路径越界: {name}", stage="payload")
        return target

    def _write_payloads(
        self,
        package: Package,
        strategy: InstallerStrategy,
        paths: InstallationPaths,
        tracker: ProgressTracker,
    ) -> None:
        for component in package.components:
            try:
                data = strategy.process_component(component)
                if data:
                    atomic_write(self._target(paths, component.name), data)
            except (PkgRunError, OSError, ValueError) as e:
                raise InstallationError(f"处理组件 {component.name} 失败: {e}", stage="components") from e
            tracker.advance(f"组件 {component.name}")

        for resource in package.resources:
            try:
                data = strategy.process_resource(resource)
                if data:
                    atomic_write(self._target(paths, resource.name), data)
            except (PkgRunError, OSError, ValueError) as e:
                raise InstallationError(f"处理资源 {resource.name} 失败: {e}", stage="resources") from e
            tracker.advance(f"资源 {resource.name}")

    def _run_hook_unit(self, package: Package, unit_name: str) -> None:
        try:
            self.units.temporary_execute(package, unit_name)
        except _BEST_EFFORT_ERRORS as e:
            logger.warning("钩子单元 %s 执行失败: %s", unit_name, e)

    def _register_sources(self, package: Package, opts: set[InstallOption]) -> None:
        candidates: list[RemoteSource] = []
        if InstallOption.SKIP_REPOSITORIES not in opts:
            candidates.extend(package.repositories)
        if package.update_source is not None and package.update_source.repository is not None:
            candidates.append(package.update_source.repository)
        for repository in candidates:
            if self.sources.exists(repository.name):
                continue
            logger.info("登记远程源 %s (%s)", repository.name, repository.host)
            self.sources.add(repository)

    # =====================================================================
    # 卸载
    # =====================================================================

    def uninstall_package_version(self, name: str, version: str) -> None:
        require_system(self._scope_resolver, f"卸载 {name}={version}")
        with self.lock_store.mutation() as lock:
            entry = lock.get_version(name, version)
            if entry is None:
                raise PackageNotFoundError(f"{name}={version} 未安装")

            logger.info("卸载 %s=%s", name, entry.version, extra={"package": name, "version": entry.version})
            if not lock.remove_package_version(name, entry.version):
                logger.warning("从锁文件删除 %s=%s 失败", name, entry.version)
            self.lock_store.save()

            self._remove_tree(Path(entry.location))

            for unit_name in entry.execution_units:
                try:
                    if not self.units.remove_unit(name, entry.version, unit_name):
                        logger.warning("执行单元 %s 未注册 (%s=%s)", unit_name, name, entry.version)
                except _BEST_EFFORT_ERRORS as e:
                    logger.warning("注销执行单元 %s 失败: %s", unit_name, e)

            self.symlinks.sync()

    def uninstall_package(self, name: str) -> None:
        """卸载包的全部版本，单个版本失败只记录警告"""
        require_system(self._scope_resolver, f"卸载 {name}")
        with self.lock_store.mutation() as lock:
            entry = lock.get_package(name)
            if entry is None:
                raise PackageNotFoundError(f"{name} 未安装")
            for version in list(entry.versions):
                try:
                    self.uninstall_package_version(name, version)
                except _BEST_EFFORT_ERRORS as e:
                    logger.warning("卸载 %s=%s 失败: %s", name, version, e)

    @staticmethod
    def _remove_tree(location: Path) -> None:
        """逐个删除文件，最后删除目录本身；缺失与失败只记录警告"""
        if not location.exists():
            logger.warning("安装目录不存在: %s", location)
            return
        for path in sorted(location.rglob("*"), key=lambda p: len(p.parts), reverse=True):
            try:
                if path.is_dir() and not path.is_symlink():
                    path.rmdir()
                else:
                    path.unlink()
            except OSError as e:
                logger.warning("删除失败 %s: %s", path, e)
        try:
            location.rmdir()
        except OSError:
            shutil.rmtree(location, ignore_errors=True)
            if location.exists():
                logger.warning("安装目录未能完全删除: %s", location)

    # =====================================================================
    # 查询
    # =====================================================================

    def get_package(self, name: str) -> PackageEntry | None:
        return self.lock_store.get_package_lock().get_package(name)

    def get_package_version(self, name: str, version: str) -> VersionEntry | None:
        return self.lock_store.get_package_lock().get_version(name, version)

    def get_latest_version(self, name: str) -> VersionEntry | None:
        entry = self.get_package(name)
        if entry is None:
            return None
        return entry.get_version(entry.latest_version)

    def get_installed_packages(self) -> dict[str, list[str]]:
        """包名 → 已安装版本列表"""
        lock = self.lock_store.get_package_lock()
        return {name: list(lock.packages[name].versions) for name in lock.get_packages()}

    def get_package_tree(self, package: str | None = None) -> dict[str, dict]:
        return self.lock_store.get_package_lock().get_package_tree(package)

    def get_missing_packages(self) -> list[dict[str, Any]]:
        """锁文件中被依赖但未安装的包"""
        return [
            {
                "required_by": required_by,
                "package": dep.name,
                "version": dep.version,
                "source_type": dep.source_type,
                "source": dep.source,
            }
            for required_by, dep in self.lock_store.get_package_lock().get_missing_dependencies()
        ]
