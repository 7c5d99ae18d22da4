"""统一异常体系

所有业务异常继承 PkgRunError，替代散落的 ValueError / RuntimeError。
CLI 层据此输出友好提示并以非零状态退出。
"""

from __future__ import annotations

from dataclasses import dataclass


class PkgRunError(Exception):
    """运行时基础异常"""

    code: str = "UNKNOWN"

    def __init__(self, message: str) -> None:
        super().__init__(message)


class ConfigError(PkgRunError):
    """配置文件缺失或内容无效"""

    code = "CONFIG_ERROR"


class ValidationError(PkgRunError):
    """输入数据校验失败"""

    code = "VALIDATION_ERROR"

    def __init__(self, message: str, details: list[str] | None = None) -> None:
        super().__init__(message)
        self.details = details or []


class PrivilegeError(PkgRunError):
    """当前作用域不允许修改共享状态（需要 system 权限）"""

    code = "PRIVILEGE_ERROR"


class NotFoundError(PkgRunError):
    code = "NOT_FOUND"


class PathNotFoundError(NotFoundError):
    """包文件不存在、不是普通文件或不可读"""

    code = "PATH_NOT_FOUND"


class PackageNotFoundError(NotFoundError):
    """指定的包或版本未安装"""

    code = "PACKAGE_NOT_FOUND"


class NoUnitsError(NotFoundError):
    """包版本没有任何已注册的执行单元"""

    code = "NO_UNITS"


class UnitNotFoundError(NotFoundError):
    code = "UNIT_NOT_FOUND"


class DependencyNotFoundError(NotFoundError):
    """依赖无法满足（static 依赖未安装，或本地依赖文件缺失）"""

    code = "DEPENDENCY_NOT_FOUND"


class SourceNotFoundError(NotFoundError):
    """远程源未定义"""

    code = "SOURCE_NOT_FOUND"


class AlreadyInstalledError(PkgRunError):
    code = "ALREADY_INSTALLED"


class UnsupportedError(PkgRunError):
    code = "UNSUPPORTED"


class UnsupportedExtensionError(UnsupportedError):
    """没有与编译扩展标签匹配的安装策略"""

    code = "UNSUPPORTED_EXTENSION"


class UnsupportedRunnerError(UnsupportedError):
    """执行单元的 runner 没有对应的解释器 / 扩展名"""

    code = "UNSUPPORTED_RUNNER"


class LockStoreError(PkgRunError):
    """锁文件损坏或无法解码"""

    code = "LOCK_STORE_ERROR"


class IOFailureError(PkgRunError):
    code = "IO_FAILURE"


class InstallationError(PkgRunError):
    """安装过程中的失败，消息中带有出错阶段"""

    code = "INSTALLATION_ERROR"

    def __init__(self, message: str, stage: str = "") -> None:
        super().__init__(f"[{stage}] {message}" if stage else message)
        self.stage = stage


class ExecutionError(PkgRunError):
    """外部命令执行失败"""

    code = "EXECUTION_ERROR"


@dataclass(frozen=True)
class FetchAttempt:
    """远程获取的一次尝试记录"""

    kind: str
    message: str

    def __str__(self) -> str:
        return f"{self.kind}: {self.message}"


class FetchError(PkgRunError):
    """远程获取失败，attempts 保存每次尝试的失败原因"""

    code = "FETCH_ERROR"

    def __init__(self, message: str, attempts: list[FetchAttempt] | None = None) -> None:
        self.attempts = collapse_attempts(attempts or [])
        if self.attempts:
            detail = "; ".join(str(a) for a in self.attempts)
            message = f"{message}: {detail}"
        super().__init__(message)


def collapse_attempts(attempts: list[FetchAttempt]) -> list[FetchAttempt]:
    """折叠相邻的重复失败消息"""
    collapsed: list[FetchAttempt] = []
    for attempt in attempts:
        if collapsed and collapsed[-1].message == attempt.message:
            continue
        collapsed.append(attempt)
    return collapsed
