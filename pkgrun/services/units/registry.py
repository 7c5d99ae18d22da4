"""执行单元注册表

职责:
- 按 包 + 版本 持久化执行单元（脚本 + 执行策略 + 入口脚本）
- 拉起解释器执行单元，按退出码分发退出处理器
- 跟踪临时单元，在作用域结束时统一清理

目录布局（哈希见 pkgrun.utils.hashing）:
    <runner_dir>/<package_id>.yml            单元索引
    <runner_dir>/<package_id>/<unit_id><ext>  脚本
    <runner_dir>/<package_id>/<unit_id>.entry 入口脚本
"""

from __future__ import annotations

import logging
import shlex
import shutil
import subprocess
from collections.abc import Sequence
from pathlib import Path
from typing import Any

import yaml

from pkgrun.core.constants import compile_constants, runtime_constants
from pkgrun.core.exceptions import (
    IOFailureError,
    NoUnitsError,
    PkgRunError,
    UnitNotFoundError,
)
from pkgrun.core.models import ExecutionPolicy, ExecutionUnit, ExitHandle, ExitHandlers, Package
from pkgrun.core.privilege import ScopeResolver, require_system, resolve_scope
from pkgrun.services.units.runners import get_runner, spawn
from pkgrun.utils import hashing
from pkgrun.utils.yaml_io import atomic_write, load_yaml, save_yaml

logger = logging.getLogger(__name__)

ENTRY_SUFFIX = ".entry"


class ExecutionUnitRegistry:
    """执行单元注册表

    可作为上下文管理器使用，退出时清理本次注册的所有临时单元:

        with ExecutionUnitRegistry(runner_dir) as registry:
            registry.temporary_execute(package, "setup")
    """

    def __init__(
        self,
        runner_dir: str = "",
        *,
        program: str = "",
        default_timeout: int = 0,
        scope_resolver: ScopeResolver = resolve_scope,
    ) -> None:
        if not runner_dir or not program:
            from pkgrun.core.config import get_config
            cfg = get_config()
            runner_dir = runner_dir or cfg.runner_dir
            program = program or cfg.program
        self.runner_dir = Path(runner_dir)
        self.program = program
        self.default_timeout = default_timeout
        self._scope_resolver = scope_resolver
        self._temporary: list[tuple[str, str, str]] = []

    def __enter__(self) -> ExecutionUnitRegistry:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.clean_temporary_units()

    # ---- 路径映射 ----

    @staticmethod
    def package_id(package: str, version: str) -> str:
        return hashing.package_id(package, version)

    @staticmethod
    def unit_id(name: str) -> str:
        return hashing.unit_id(name)

    def _index_path(self, package: str, version: str) -> Path:
        return self.runner_dir / f"{self.package_id(package, version)}.yml"

    def _package_dir(self, package: str, version: str) -> Path:
        return self.runner_dir / self.package_id(package, version)

    def get_entry_point_path(self, package: str, version: str, name: str) -> Path:
        return self._package_dir(package, version) / f"{self.unit_id(name)}{ENTRY_SUFFIX}"

    # ---- 索引读写 ----

    def _load_index(self, package: str, version: str) -> dict[str, Any] | None:
        path = self._index_path(package, version)
        if not path.exists():
            return None
        try:
            data = load_yaml(path)
        except (yaml.YAMLError, ValueError, OSError) as e:
            raise IOFailureError(f"无法读取执行单元索引 {path}: {e}") from e
        data.setdefault("units", [])
        return data

    @staticmethod
    def _find(index: dict[str, Any], name: str) -> dict[str, Any] | None:
        for entry in index["units"]:
            if entry["policy"]["name"] == name:
                return entry
        return None

    def _write_entry_point(self, package: str, version: str, name: str) -> Path:
        path = self.get_entry_point_path(package, version, name)
        command = " ".join([
            shlex.quote(self.program), "exec",
            shlex.quote(f"--package={package}"),
            shlex.quote(f"--version={version}"),
            shlex.quote(f"--unit={name}"),
        ])
        atomic_write(path, f'#!/bin/sh\nexec {command} -- "$@"\n', mode=0o755)
        return path

    # ---- 注册 / 注销 ----

    def add_unit(
        self, package: str, version: str, unit: ExecutionUnit, temporary: bool = False,
    ) -> None:
        """注册执行单元；temporary 且脚本已存在时直接返回"""
        name = unit.policy.name
        require_system(self._scope_resolver, f"添加执行单元 '{name}' ({package}={version})")

        runner = get_runner(unit.policy.runner)
        pkg_dir = self._package_dir(package, version)
        script = pkg_dir / f"{self.unit_id(name)}{runner.extension}"
        if temporary and script.exists():
            logger.debug("临时单元已存在，跳过: %s (%s=%s)", name, package, version)
            return

        index = self._load_index(package, version) or {
            "package": package, "version": version, "units": [],
        }
        atomic_write(script, unit.data)
        entry_point = self._write_entry_point(package, version, name)

        record = {
            "policy": unit.policy.to_dict(),
            "file": script.name,
            "entry_point": entry_point.name,
        }
        existing = self._find(index, name)
        if existing is not None:
            index["units"][index["units"].index(existing)] = record
        else:
            index["units"].append(record)
        save_yaml(self._index_path(package, version), index)

        if temporary:
            self._temporary.append((package, version, name))
        logger.info("执行单元已注册: %s (%s=%s)", name, package, version, extra={
            "package": package, "version": version, "unit": name,
        })

    def remove_unit(self, package: str, version: str, name: str) -> bool:
        """注销执行单元，返回是否找到并删除了索引条目"""
        require_system(self._scope_resolver, f"删除执行单元 '{name}' ({package}={version})")

        index = self._load_index(package, version)
        if index is None:
            return False
        entry = self._find(index, name)
        if entry is None:
            return False

        index["units"].remove(entry)
        pkg_dir = self._package_dir(package, version)
        if not index["units"]:
            shutil.rmtree(pkg_dir, ignore_errors=True)
            self._index_path(package, version).unlink(missing_ok=True)
        else:
            (pkg_dir / entry["file"]).unlink(missing_ok=True)
            (pkg_dir / entry["entry_point"]).unlink(missing_ok=True)
            save_yaml(self._index_path(package, version), index)
        logger.info("执行单元已注销: %s (%s=%s)", name, package, version)
        return True

    def get_units(self, package: str, version: str) -> list[str]:
        """返回已注册的单元名（按注册顺序），索引不存在时返回空列表"""
        index = self._load_index(package, version)
        if index is None:
            return []
        return [entry["policy"]["name"] for entry in index["units"]]

    def clean_temporary_units(self) -> None:
        """注销本实例注册的全部临时单元，单个失败只记录警告"""
        pending, self._temporary = self._temporary, []
        for package, version, name in pending:
            try:
                self.remove_unit(package, version, name)
            except (PkgRunError, OSError) as e:
                logger.warning("清理临时单元失败: %s (%s=%s): %s", name, package, version, e)

    # ---- 执行 ----

    def execute_unit(
        self, package: str, version: str, name: str, args: Sequence[str] = (),
    ) -> int:
        """执行单元并分发退出处理器，返回子进程退出码（启动失败返回 -1）"""
        index = self._load_index(package, version)
        if index is None:
            raise NoUnitsError(f"'{package}={version}' 没有可用的执行单元")
        entry = self._find(index, name)
        if entry is None:
            raise UnitNotFoundError(f"执行单元 '{name}' 在 '{package}={version}' 中不存在")

        policy = ExecutionPolicy.from_dict(entry["policy"])
        refs = runtime_constants()
        arguments = [compile_constants(o, refs) or "" for o in policy.execute.options]
        arguments.extend(args)

        interpreter = get_runner(policy.runner).executable_path()
        script = self._package_dir(package, version) / entry["file"]
        handlers = policy.exit_handlers

        if policy.message:
            logger.info(policy.message)
        try:
            process = spawn(
                interpreter, script, arguments, policy.execute,
                default_timeout=self.default_timeout,
            )
        except (OSError, subprocess.SubprocessError) as e:
            logger.error("执行单元运行失败: %s (%s=%s): %s", name, package, version, e)
            if handlers is not None and handlers.error is not None:
                self.handle_exit(package, version, handlers.error)
            # 启动失败按退出码 -1 的失败进程继续分发
            process = subprocess.CompletedProcess([str(interpreter), str(script), *arguments], -1)

        if handlers is not None:
            self._dispatch_exit_handlers(package, version, handlers, process)
        return process.returncode

    def _dispatch_exit_handlers(
        self,
        package: str,
        version: str,
        handlers: ExitHandlers,
        process: subprocess.CompletedProcess,
    ) -> None:
        succeeded = process.returncode == 0
        if succeeded and handlers.success is not None:
            self.handle_exit(package, version, handlers.success)
        elif succeeded and handlers.error is not None:
            self._dispatch_success_without_success_handler(package, version, handlers.error)
        else:
            for handle in (handlers.success, handlers.warning, handlers.error):
                if handle is not None:
                    self.handle_exit(package, version, handle, process)

    def _dispatch_success_without_success_handler(
        self, package: str, version: str, error_handle: ExitHandle,
    ) -> None:
        """进程成功但只配置了 error 处理器时，照常运行 error 处理器（不带进程，不比较退出码）

        这一分支与 success / error 的命名并不一致，保留现有行为并单独测试。
        """
        logger.debug("进程成功且未配置 success 处理器，运行 error 处理器 (%s=%s)", package, version)
        self.handle_exit(package, version, error_handle)

    def handle_exit(
        self,
        package: str,
        version: str,
        handle: ExitHandle,
        process: subprocess.CompletedProcess | None = None,
    ) -> bool:
        """处理单个退出处理器

        传入 process 且未设置 end_process 时，只有退出码与 handle.exit_code 一致才继续；
        end_process 时以 handle.exit_code 直接结束整个程序。
        """
        if handle.message:
            logger.info(handle.message)

        if process is not None and not handle.end_process:
            if handle.exit_code != process.returncode:
                return False
        elif handle.end_process:
            logger.debug("退出处理器要求结束进程，退出码 %d", handle.exit_code)
            raise SystemExit(handle.exit_code)

        if handle.run:
            self.execute_unit(package, version, handle.run)
        return True

    def temporary_execute(self, package: Package, unit_name: str) -> int:
        """临时注册单元及其退出处理器引用的单元，执行后清理"""
        unit = package.get_unit(unit_name)
        if unit is None:
            raise UnitNotFoundError(f"执行单元 '{unit_name}' 在 '{package.name}={package.version}' 中不存在")

        required: list[ExecutionUnit] = []
        for name in unit.policy.referenced_units():
            referenced = package.get_unit(name)
            if referenced is None:
                raise UnitNotFoundError(
                    f"执行单元 '{unit_name}' 引用的 '{name}' 在 '{package.name}={package.version}' 中不存在"
                )
            required.append(referenced)

        try:
            self.add_unit(package.name, package.version, unit, temporary=True)
            for referenced in required:
                self.add_unit(package.name, package.version, referenced, temporary=True)
            return self.execute_unit(package.name, package.version, unit_name)
        finally:
            self.clean_temporary_units()
