"""Runner 解析与解释器进程拉起

职责:
- runner 标识 → {扩展名, 解释器路径}
- 按执行策略（工作目录 / 超时 / silent / tty）拉起解释器子进程
"""

from __future__ import annotations

import logging
import shutil
import subprocess
import sys
from dataclasses import dataclass
from pathlib import Path

from pkgrun.core.exceptions import UnsupportedRunnerError
from pkgrun.core.models import Execute

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Runner:
    name: str
    extension: str
    executables: tuple[str, ...]

    def executable_path(self) -> str:
        """在 PATH 中查找解释器，找不到时抛 UnsupportedRunnerError"""
        for candidate in self.executables:
            found = shutil.which(candidate)
            if found:
                return found
        raise UnsupportedRunnerError(
            f"runner '{self.name}' 的解释器不可用 (查找: {', '.join(self.executables)})"
        )


RUNNERS: dict[str, Runner] = {
    "php": Runner("php", ".php", ("php",)),
    "bash": Runner("bash", ".sh", ("bash",)),
    "python": Runner("python", ".py", ("python3", "python")),
    "python3": Runner("python3", ".py", ("python3",)),
    "python2": Runner("python2", ".py", ("python2",)),
    "perl": Runner("perl", ".pl", ("perl",)),
    "lua": Runner("lua", ".lua", ("lua",)),
}


def get_runner(name: str) -> Runner:
    runner = RUNNERS.get(name)
    if runner is None:
        raise UnsupportedRunnerError(f"不支持的 runner: {name}")
    return runner


def spawn(
    interpreter: str,
    script: Path,
    args: list[str],
    execute: Execute,
    *,
    default_timeout: int | None = None,
) -> subprocess.CompletedProcess:
    """拉起解释器并等待结束

    silent 时丢弃输出；tty 时完整继承标准输入输出；
    否则关闭标准输入、继承标准输出和标准错误。

    异常:
        OSError: 解释器无法启动
        subprocess.TimeoutExpired: 超时后进程已被终止
    """
    tty = execute.tty
    if tty and not sys.stdout.isatty():
        logger.warning("当前进程未连接终端，已关闭 tty 模式")
        tty = False

    kwargs: dict = {}
    if execute.silent:
        kwargs.update(stdin=subprocess.DEVNULL, stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL)
    elif not tty:
        kwargs.update(stdin=subprocess.DEVNULL)

    timeout = execute.timeout if execute.timeout else (default_timeout or None)
    cmd = [interpreter, str(script), *args]
    logger.debug("执行: %s (cwd=%s, timeout=%s)", cmd, execute.working_directory, timeout)
    return subprocess.run(
        cmd, cwd=execute.working_directory or None,
        timeout=timeout, check=False, **kwargs,
    )
