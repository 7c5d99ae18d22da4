"""核心数据模型

所有核心数据类集中定义，安装器、执行单元注册表、锁文件存储和远程获取
统一从此处导入 Package / ExecutionUnit / Dependency 等领域实体。

序列化约定: to_dict() 只产出 YAML 安全的基础类型（枚举转 value，
bytes 保留为 bytes 以 !!binary 落盘），from_dict() 容忍缺省字段。
"""

from __future__ import annotations

import base64
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

# =========================================================================
# 枚举
# =========================================================================


class Scope(str, Enum):
    """权限作用域"""
    SYSTEM = "system"
    USER = "user"


class InstallOption(str, Enum):
    """install 支持的选项"""
    REINSTALL = "reinstall"
    SKIP_DEPENDENCIES = "skip-dependencies"
    SKIP_REPOSITORIES = "skip-repositories"
    STATIC = "static"
    BUILD_SOURCE = "build-source"


class DependencySourceType(str, Enum):
    """依赖来源类型"""
    LOCAL = "local"      # 相对于安装包所在目录的包文件
    STATIC = "static"    # 要求已静态链接，未安装即失败，绝不拉取
    REMOTE = "remote"    # 远程源定位串 vendor/package=version@source


class ComponentDataType(str, Enum):
    """组件载荷编码"""
    PLAIN = "plain"
    BASE64_ENCODED = "base64_encoded"
    BINARY = "binary"


def _as_bytes(value: Any) -> bytes:
    """YAML 读出的载荷可能是 bytes (!!binary) 或 str"""
    if value is None:
        return b""
    if isinstance(value, bytes):
        return value
    return str(value).encode("utf-8")


# =========================================================================
# 包元信息
# =========================================================================


@dataclass
class Assembly:
    """包的程序集信息"""

    name: str
    package: str
    version: str
    description: str = ""
    company: str = ""
    product: str = ""
    copyright: str = ""
    trademark: str = ""
    uid: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name, "package": self.package, "version": self.version,
            "description": self.description, "company": self.company,
            "product": self.product, "copyright": self.copyright,
            "trademark": self.trademark, "uid": self.uid,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Assembly:
        known = cls.__dataclass_fields__
        return cls(**{k: str(v) for k, v in data.items() if k in known and v is not None})


@dataclass
class Dependency:
    """包声明的依赖

    version 为空表示任意已安装版本即可满足。
    """

    name: str
    version: str = ""
    source_type: DependencySourceType = DependencySourceType.REMOTE
    source: str = ""

    @property
    def key(self) -> str:
        return f"{self.name}={self.version or 'latest'}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name, "version": self.version,
            "source_type": self.source_type.value, "source": self.source,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Dependency:
        return cls(
            name=data["name"],
            version=str(data.get("version") or ""),
            source_type=DependencySourceType(data.get("source_type", "remote")),
            source=data.get("source", ""),
        )


@dataclass
class Component:
    """包内的源码组件，按 data_type 解码后写入 source 目录"""

    name: str
    data: bytes = b""
    data_type: ComponentDataType = ComponentDataType.PLAIN

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "data_type": self.data_type.value, "data": self.data}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Component:
        return cls(
            name=data["name"],
            data=_as_bytes(data.get("data")),
            data_type=ComponentDataType(data.get("data_type", "plain")),
        )


@dataclass
class Resource:
    """包内的资源文件，原样写入 source 目录"""

    name: str
    data: bytes = b""

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "data": self.data}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Resource:
        return cls(name=data["name"], data=_as_bytes(data.get("data")))


# =========================================================================
# 执行单元
# =========================================================================


@dataclass
class Execute:
    """执行参数"""

    options: list[str] = field(default_factory=list)
    working_directory: str | None = None
    timeout: int | None = None
    silent: bool = False
    tty: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "options": list(self.options),
            "working_directory": self.working_directory,
            "timeout": self.timeout,
            "silent": self.silent,
            "tty": self.tty,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> Execute:
        data = data or {}
        timeout = data.get("timeout")
        return cls(
            options=[str(o) for o in data.get("options") or []],
            working_directory=data.get("working_directory"),
            timeout=int(timeout) if timeout is not None else None,
            silent=bool(data.get("silent", False)),
            tty=bool(data.get("tty", False)),
        )


@dataclass
class ExitHandle:
    """退出处理: 进程结束后根据退出码决定打印 / 终止 / 继续执行另一个单元"""

    message: str | None = None
    end_process: bool = False
    exit_code: int = 0
    run: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "message": self.message, "end_process": self.end_process,
            "exit_code": self.exit_code, "run": self.run,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> ExitHandle | None:
        if data is None:
            return None
        return cls(
            message=data.get("message"),
            end_process=bool(data.get("end_process", False)),
            exit_code=int(data.get("exit_code", 0)),
            run=data.get("run"),
        )


@dataclass
class ExitHandlers:
    success: ExitHandle | None = None
    warning: ExitHandle | None = None
    error: ExitHandle | None = None

    def handles(self) -> list[ExitHandle]:
        """按 success → warning → error 顺序返回已配置的处理器"""
        return [h for h in (self.success, self.warning, self.error) if h is not None]

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success.to_dict() if self.success else None,
            "warning": self.warning.to_dict() if self.warning else None,
            "error": self.error.to_dict() if self.error else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> ExitHandlers | None:
        if data is None:
            return None
        return cls(
            success=ExitHandle.from_dict(data.get("success")),
            warning=ExitHandle.from_dict(data.get("warning")),
            error=ExitHandle.from_dict(data.get("error")),
        )


@dataclass
class ExecutionPolicy:
    """执行策略：名称在同一包版本内唯一"""

    name: str
    runner: str
    execute: Execute = field(default_factory=Execute)
    message: str | None = None
    exit_handlers: ExitHandlers | None = None

    def referenced_units(self) -> list[str]:
        """退出处理器引用的其他单元名（去重，保持顺序）"""
        if self.exit_handlers is None:
            return []
        names: list[str] = []
        for handle in self.exit_handlers.handles():
            if handle.run and handle.run not in names:
                names.append(handle.run)
        return names

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "runner": self.runner,
            "execute": self.execute.to_dict(),
            "message": self.message,
            "exit_handlers": self.exit_handlers.to_dict() if self.exit_handlers else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ExecutionPolicy:
        return cls(
            name=data["name"],
            runner=data["runner"],
            execute=Execute.from_dict(data.get("execute")),
            message=data.get("message"),
            exit_handlers=ExitHandlers.from_dict(data.get("exit_handlers")),
        )


@dataclass
class ExecutionUnit:
    """执行策略 + 脚本内容"""

    policy: ExecutionPolicy
    data: bytes = b""

    @property
    def name(self) -> str:
        return self.policy.name

    def to_dict(self) -> dict[str, Any]:
        return {"policy": self.policy.to_dict(), "data": self.data}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ExecutionUnit:
        return cls(
            policy=ExecutionPolicy.from_dict(data["policy"]),
            data=_as_bytes(data.get("data")),
        )


# =========================================================================
# 远程源
# =========================================================================


@dataclass
class RemoteSource:
    """远程源定义: 名称 → {host, type, ssl}"""

    name: str
    host: str
    type: str = "index"
    ssl: bool = True

    @property
    def base_url(self) -> str:
        scheme = "https" if self.ssl else "http"
        return f"{scheme}://{self.host}"

    def to_dict(self) -> dict[str, Any]:
        return {"host": self.host, "type": self.type, "ssl": self.ssl}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RemoteSource:
        return cls(
            name=data["name"],
            host=data["host"],
            type=data.get("type") or "index",
            ssl=bool(data.get("ssl", True)),
        )


@dataclass
class UpdateSource:
    """包的更新源: 远程定位串 + 可选的仓库定义"""

    source: str
    repository: RemoteSource | None = None

    def to_dict(self) -> dict[str, Any]:
        repo = None
        if self.repository is not None:
            repo = {"name": self.repository.name, **self.repository.to_dict()}
        return {"source": self.source, "repository": repo}

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> UpdateSource | None:
        if data is None:
            return None
        repo = data.get("repository")
        return cls(
            source=data["source"],
            repository=RemoteSource.from_dict(repo) if repo else None,
        )


@dataclass
class Credential:
    """远程源认证信息（凭据的加密存储由外部负责）"""

    name: str = ""
    username: str = ""
    password: str = ""
    token: str = ""

    def headers(self) -> dict[str, str]:
        if self.token:
            return {"Authorization": f"Bearer {self.token}"}
        if self.username:
            raw = f"{self.username}:{self.password}".encode()
            return {"Authorization": "Basic " + base64.b64encode(raw).decode("ascii")}
        return {}


# =========================================================================
# 包
# =========================================================================


@dataclass
class InstallerHooks:
    """安装钩子: 引用执行单元名"""

    pre_install: list[str] = field(default_factory=list)
    post_install: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"pre_install": list(self.pre_install), "post_install": list(self.post_install)}

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> InstallerHooks | None:
        if data is None:
            return None
        return cls(
            pre_install=list(data.get("pre_install") or []),
            post_install=list(data.get("post_install") or []),
        )


@dataclass
class Package:
    """已解析的包容器，只在一次 install 调用期间由调用方持有"""

    assembly: Assembly
    compiler_extension: str = "generic"
    dependencies: list[Dependency] = field(default_factory=list)
    components: list[Component] = field(default_factory=list)
    resources: list[Resource] = field(default_factory=list)
    execution_units: list[ExecutionUnit] = field(default_factory=list)
    installer: InstallerHooks | None = None
    create_symlink: bool = False
    main_execution_policy: str | None = None
    update_source: UpdateSource | None = None
    repositories: list[RemoteSource] = field(default_factory=list)
    runtime_constants: dict[str, str] = field(default_factory=dict)

    @property
    def name(self) -> str:
        return self.assembly.package

    @property
    def version(self) -> str:
        return self.assembly.version

    def get_unit(self, name: str) -> ExecutionUnit | None:
        for unit in self.execution_units:
            if unit.name == name:
                return unit
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "assembly": self.assembly.to_dict(),
            "compiler_extension": self.compiler_extension,
            "dependencies": [d.to_dict() for d in self.dependencies],
            "components": [c.to_dict() for c in self.components],
            "resources": [r.to_dict() for r in self.resources],
            "execution_units": [u.to_dict() for u in self.execution_units],
            "installer": self.installer.to_dict() if self.installer else None,
            "create_symlink": self.create_symlink,
            "main_execution_policy": self.main_execution_policy,
            "update_source": self.update_source.to_dict() if self.update_source else None,
            "repositories": [{"name": r.name, **r.to_dict()} for r in self.repositories],
            "runtime_constants": dict(self.runtime_constants),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Package:
        return cls(
            assembly=Assembly.from_dict(data["assembly"]),
            compiler_extension=data.get("compiler_extension") or "generic",
            dependencies=[Dependency.from_dict(d) for d in data.get("dependencies") or []],
            components=[Component.from_dict(c) for c in data.get("components") or []],
            resources=[Resource.from_dict(r) for r in data.get("resources") or []],
            execution_units=[ExecutionUnit.from_dict(u) for u in data.get("execution_units") or []],
            installer=InstallerHooks.from_dict(data.get("installer")),
            create_symlink=bool(data.get("create_symlink", False)),
            main_execution_policy=data.get("main_execution_policy"),
            update_source=UpdateSource.from_dict(data.get("update_source")),
            repositories=[RemoteSource.from_dict(r) for r in data.get("repositories") or []],
            runtime_constants={str(k): str(v) for k, v in (data.get("runtime_constants") or {}).items()},
        )


@dataclass(frozen=True)
class InstallationPaths:
    """安装目录布局（派生值，不持久化）"""

    root: Path

    @property
    def bin_path(self) -> Path:
        return self.root / "bin"

    @property
    def data_path(self) -> Path:
        return self.root / "data"

    @property
    def source_path(self) -> Path:
        return self.root / "source"

    def all(self) -> list[Path]:
        return [self.root, self.bin_path, self.data_path, self.source_path]
