"""特殊常量编译

职责:
- 安装常量: %INSTALL_PATH% / %INSTALL_PATH.BIN% / %INSTALL_PATH.SRC% / %INSTALL_PATH.DATA%
- 程序集常量: %ASSEMBLY.NAME% / %ASSEMBLY.PACKAGE% / %ASSEMBLY.VERSION% ...
- 运行时常量: %CWD% / %PID% / %UID% / %GID% / %USER_HOME_PATH% 及日期时间，
  在执行单元启动时替换
"""

from __future__ import annotations

import copy
import os
from datetime import datetime
from pathlib import Path

from pkgrun.core.models import Assembly, ExecutionUnit, InstallationPaths, Package

INSTALL_PATH = "%INSTALL_PATH%"
INSTALL_PATH_BIN = "%INSTALL_PATH.BIN%"
INSTALL_PATH_SRC = "%INSTALL_PATH.SRC%"
INSTALL_PATH_DATA = "%INSTALL_PATH.DATA%"

# 日期时间占位符 → strftime 格式
DATETIME_FORMATS = {
    "%Y%": "%Y",
    "%y%": "%y",
    "%m%": "%m",
    "%d%": "%d",
    "%H%": "%H",
    "%i%": "%M",
    "%s%": "%S",
    "%D%": "%a",
    "%l%": "%A",
    "%M%": "%b",
    "%F%": "%B",
}


def compile_constants(text: str | None, refs: dict[str, str]) -> str | None:
    """把 text 中出现的占位符替换为 refs 中的值"""
    if text is None:
        return None
    for placeholder, value in refs.items():
        if placeholder in text:
            text = text.replace(placeholder, value)
    return text


def install_constants(paths: InstallationPaths) -> dict[str, str]:
    return {
        INSTALL_PATH_BIN: str(paths.bin_path),
        INSTALL_PATH_SRC: str(paths.source_path),
        INSTALL_PATH_DATA: str(paths.data_path),
        INSTALL_PATH: str(paths.root),
    }


def assembly_constants(assembly: Assembly) -> dict[str, str]:
    return {
        "%ASSEMBLY.NAME%": assembly.name,
        "%ASSEMBLY.PACKAGE%": assembly.package,
        "%ASSEMBLY.VERSION%": assembly.version,
        "%ASSEMBLY.DESCRIPTION%": assembly.description,
        "%ASSEMBLY.COMPANY%": assembly.company,
        "%ASSEMBLY.PRODUCT%": assembly.product,
        "%ASSEMBLY.COPYRIGHT%": assembly.copyright,
        "%ASSEMBLY.TRADEMARK%": assembly.trademark,
        "%ASSEMBLY.UID%": assembly.uid,
    }


def runtime_constants(now: datetime | None = None) -> dict[str, str]:
    """执行单元启动时才能确定的常量"""
    now = now or datetime.now()
    refs = {
        "%CWD%": os.getcwd(),
        "%PID%": str(os.getpid()),
        "%UID%": str(os.getuid()),
        "%GID%": str(os.getgid()),
        "%USER_HOME_PATH%": str(Path.home()),
    }
    for placeholder, fmt in DATETIME_FORMATS.items():
        refs[placeholder] = now.strftime(fmt)
    return refs


def _compile_unit(unit: ExecutionUnit, refs: dict[str, str]) -> None:
    policy = unit.policy
    policy.message = compile_constants(policy.message, refs)
    policy.execute.options = [compile_constants(o, refs) or "" for o in policy.execute.options]
    policy.execute.working_directory = compile_constants(policy.execute.working_directory, refs)
    if policy.exit_handlers is not None:
        for handle in policy.exit_handlers.handles():
            handle.message = compile_constants(handle.message, refs)


def compile_package_constants(package: Package, paths: InstallationPaths) -> Package:
    """返回替换了安装常量和程序集常量的包副本，原对象不变"""
    compiled = copy.deepcopy(package)
    refs = install_constants(paths)

    assembly = compiled.assembly
    for key, value in assembly.to_dict().items():
        setattr(assembly, key, compile_constants(value, refs))

    refs = {**refs, **assembly_constants(assembly)}
    for unit in compiled.execution_units:
        _compile_unit(unit, refs)
    compiled.runtime_constants = {
        k: compile_constants(v, refs) or "" for k, v in compiled.runtime_constants.items()
    }
    return compiled
