"""源码树 → 包文件

远程获取得到的是源码树（归档解压结果或 git 检出）时，由此转换为可安装的包文件:

1. 源码树中有 pkgrun.yml 项目清单 → 按清单组装 Package
2. 有 PKG-INFO / pyproject.toml / setup.py → 按 Python 项目组装（python 安装策略）
3. 源码树中已有预构建的 .pkg 文件 → 直接使用
"""

from __future__ import annotations

import logging
from email.parser import HeaderParser
from pathlib import Path
from typing import Any

import yaml

from pkgrun.core.exceptions import InstallationError, ValidationError
from pkgrun.core.models import (
    Assembly,
    Component,
    Dependency,
    ExecutionPolicy,
    ExecutionUnit,
    InstallerHooks,
    Package,
    RemoteSource,
    Resource,
    UpdateSource,
)
from pkgrun.core.package_file import PACKAGE_SUFFIX, PackageFile
from pkgrun.core.versions import LATEST
from pkgrun.utils.yaml_io import load_yaml

logger = logging.getLogger(__name__)

MANIFEST_NAME = "pkgrun.yml"
_PYTHON_MARKERS = ("PKG-INFO", "pyproject.toml", "setup.py")
_PYTHON_SKIP = {"PKG-INFO", "setup.py", "setup.cfg", "pyproject.toml", "MANIFEST.in"}


def _collect_files(root: Path) -> list[tuple[str, bytes]]:
    files = []
    for path in sorted(root.rglob("*")):
        if not path.is_file():
            continue
        rel = path.relative_to(root)
        if any(part.startswith(".git") for part in rel.parts):
            continue
        files.append((rel.as_posix(), path.read_bytes()))
    return files


def project_root(tree: Path) -> Path:
    """归档常带一层包裹目录，下钻到真正的项目根"""
    current = tree
    while True:
        if (current / MANIFEST_NAME).exists() or any((current / m).exists() for m in _PYTHON_MARKERS):
            return current
        children = [p for p in current.iterdir() if not p.name.startswith(".")]
        if len(children) == 1 and children[0].is_dir():
            current = children[0]
            continue
        return current


class SourceBuilder:
    """把源码树转换为包文件"""

    def __init__(self, output_dir: Path) -> None:
        self.output_dir = output_dir

    def try_compile(self, tree: Path, version: str = LATEST) -> Path:
        root = project_root(tree)
        if (root / MANIFEST_NAME).exists():
            package = self.from_manifest(root, version)
        elif any((root / m).exists() for m in _PYTHON_MARKERS):
            package = self.from_python_project(root, version)
        else:
            prebuilt = sorted(root.rglob(f"*{PACKAGE_SUFFIX}"))
            if prebuilt:
                logger.info("使用源码树中的预构建包: %s", prebuilt[0])
                return prebuilt[0]
            raise InstallationError(f"源码树中没有可构建的项目: {tree}", stage="build")

        dest = self.output_dir / f"{package.name}={package.version}{PACKAGE_SUFFIX}"
        PackageFile.save(package, dest)
        logger.info("源码构建完成: %s=%s -> %s", package.name, package.version, dest)
        return dest

    # ---- 项目清单 ----

    def from_manifest(self, root: Path, version: str = LATEST) -> Package:
        try:
            manifest = load_yaml(root / MANIFEST_NAME)
        except (yaml.YAMLError, ValueError, OSError) as e:
            raise ValidationError(f"项目清单无效 {root / MANIFEST_NAME}: {e}") from e
        if "assembly" not in manifest:
            raise ValidationError(f"项目清单缺少 assembly: {root / MANIFEST_NAME}")

        assembly_data = dict(manifest["assembly"])
        if not assembly_data.get("version") and version != LATEST:
            assembly_data["version"] = version
        try:
            assembly = Assembly.from_dict(assembly_data)
        except TypeError as e:
            raise ValidationError(f"assembly 字段不完整: {e}") from e

        source_dir = root / manifest.get("source", "src")
        components = []
        if source_dir.is_dir():
            components = [Component(name=n, data=d) for n, d in _collect_files(source_dir)]
        resources = []
        if manifest.get("resources"):
            resource_dir = root / manifest["resources"]
            if resource_dir.is_dir():
                resources = [Resource(name=n, data=d) for n, d in _collect_files(resource_dir)]

        return Package(
            assembly=assembly,
            compiler_extension=manifest.get("compiler_extension") or "generic",
            dependencies=[Dependency.from_dict(d) for d in manifest.get("dependencies") or []],
            components=components,
            resources=resources,
            execution_units=[self._unit(root, p) for p in manifest.get("execution_policies") or []],
            installer=InstallerHooks.from_dict(manifest.get("installer")),
            create_symlink=bool(manifest.get("create_symlink", False)),
            main_execution_policy=manifest.get("main_execution_policy"),
            update_source=UpdateSource.from_dict(manifest.get("update_source")),
            repositories=[RemoteSource.from_dict(r) for r in manifest.get("repositories") or []],
            runtime_constants=manifest.get("runtime_constants") or {},
        )

    @staticmethod
    def _unit(root: Path, policy_data: dict[str, Any]) -> ExecutionUnit:
        script = root / policy_data.get("file", "")
        if not policy_data.get("file") or not script.is_file():
            raise ValidationError(f"执行策略 '{policy_data.get('name')}' 的脚本文件不存在: {script}")
        return ExecutionUnit(policy=ExecutionPolicy.from_dict(policy_data), data=script.read_bytes())

    # ---- Python 项目 ----

    def from_python_project(self, root: Path, version: str = LATEST) -> Package:
        name, meta_version, summary = root.name, "", ""
        pkg_info = root / "PKG-INFO"
        if pkg_info.exists():
            headers = HeaderParser().parsestr(pkg_info.read_text(encoding="utf-8", errors="replace"))
            name = headers.get("Name") or name
            meta_version = headers.get("Version") or ""
            summary = headers.get("Summary") or ""

        resolved = meta_version or (version if version != LATEST else "0.0.0")
        source_root = root / "src" if (root / "src").is_dir() else root
        components = [
            Component(name=n, data=d)
            for n, d in _collect_files(source_root)
            if n not in _PYTHON_SKIP and ".egg-info/" not in n
        ]
        return Package(
            assembly=Assembly(
                name=name, package=name.lower().replace("-", "_"),
                version=resolved, description=summary,
            ),
            compiler_extension="python",
            components=components,
        )
