"""集中配置管理

所有目录、文件位置和超时集中在 Config 中，
支持从 YAML 文件加载 + 编程式覆盖。
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from pkgrun.core.exceptions import ConfigError
from pkgrun.utils.yaml_io import load_yaml

logger = logging.getLogger(__name__)

SCOPES = ("auto", "system", "user")


@dataclass
class Config:
    """运行时全局配置"""

    # 目录
    data_dir: str = "/var/lib/pkgrun"
    runner_dir: str = "/var/lib/pkgrun/runners"
    cache_dir: str = "/var/cache/pkgrun"
    bin_dir: str = "/usr/local/bin"

    # 注册表文件
    lock_file: str = "/var/lib/pkgrun/lock.yml"
    symlink_file: str = "/var/lib/pkgrun/symlinks.yml"
    sources_file: str = "/var/lib/pkgrun/sources.yml"

    # 入口脚本回调的顶层程序名
    program: str = "pkgrun"

    # 权限作用域: auto 按 euid 判断
    scope: str = "auto"

    # 超时 (秒)，0 表示不限制
    default_timeout: int = 0
    http_timeout: int = 60

    # 自定义扩展 (放不到字段里的配置项)
    extra: dict = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.scope not in SCOPES:
            raise ConfigError(f"无效的 scope: {self.scope}，可选值: {', '.join(SCOPES)}")

    @property
    def packages_dir(self) -> Path:
        return Path(self.data_dir) / "packages"

    @classmethod
    def from_file(cls, path: str = "/etc/pkgrun/config.yml") -> Config:
        """从 YAML 文件加载配置，不存在则返回默认"""
        data = load_yaml(path)
        if not data:
            return cls()
        known = {f.name for f in cls.__dataclass_fields__.values()}
        matched = {k: v for k, v in data.items() if k in known}
        extra = {k: v for k, v in data.items() if k not in known}
        cfg = cls(**matched)
        cfg.extra = extra
        return cfg

    @classmethod
    def rooted(cls, root: str | Path, **overrides: object) -> Config:
        """以 root 为根目录生成一套完整的路径配置"""
        base = Path(root)
        values: dict = {
            "data_dir": str(base / "data"),
            "runner_dir": str(base / "data" / "runners"),
            "cache_dir": str(base / "cache"),
            "bin_dir": str(base / "bin"),
            "lock_file": str(base / "data" / "lock.yml"),
            "symlink_file": str(base / "data" / "symlinks.yml"),
            "sources_file": str(base / "data" / "sources.yml"),
        }
        values.update(overrides)
        return cls(**values)

    def to_dict(self) -> dict:
        from dataclasses import asdict
        return asdict(self)


# 全局单例，首次 import 时不加载文件；由 CLI 入口显式初始化
_current: Config | None = None


def get_config() -> Config:
    """获取当前配置（未初始化则返回默认值）"""
    global _current  # noqa: PLW0603
    if _current is None:
        _current = Config()
    return _current


def init_config(path: str = "/etc/pkgrun/config.yml") -> Config:
    """从文件初始化全局配置"""
    global _current  # noqa: PLW0603
    _current = Config.from_file(path)
    logger.info("配置已加载: %s", path)
    return _current


def set_config(cfg: Config) -> None:
    """直接替换全局配置（用于测试）"""
    global _current  # noqa: PLW0603
    _current = cfg
