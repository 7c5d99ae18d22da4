"""包容器文件读写

包以 YAML 文档形式存放:

    format: pkgrun-package
    format_version: 1
    package: {...Package.to_dict()...}

组件、资源和脚本内容以 !!binary 存储。安装器只依赖 PackageReader 协议，
其他格式的读取器可直接注入。
"""

from __future__ import annotations

import logging
from pathlib import Path

import yaml

from pkgrun.core.exceptions import IOFailureError, ValidationError
from pkgrun.core.models import Package
from pkgrun.utils.yaml_io import load_document, save_yaml

logger = logging.getLogger(__name__)

FORMAT_NAME = "pkgrun-package"
FORMAT_VERSION = 1
PACKAGE_SUFFIX = ".pkg"


class PackageFile:
    """YAML 包容器读写器（满足 PackageReader 协议）"""

    def read(self, path: str | Path) -> Package:
        return self.load(path)

    @staticmethod
    def load(path: str | Path) -> Package:
        try:
            document = load_document(path)
        except (yaml.YAMLError, ValueError) as e:
            raise IOFailureError(f"无法解析包文件 {path}: {e}") from e
        except OSError as e:
            raise IOFailureError(f"无法读取包文件 {path}: {e}") from e

        if not isinstance(document, dict) or document.get("format") != FORMAT_NAME:
            raise ValidationError(f"不是有效的包文件: {path}")
        if int(document.get("format_version", 0)) > FORMAT_VERSION:
            raise ValidationError(
                f"包文件格式版本过新: {document.get('format_version')} (支持 {FORMAT_VERSION})"
            )
        try:
            return Package.from_dict(document["package"])
        except (KeyError, TypeError, ValueError) as e:
            raise ValidationError(f"包文件内容无效 {path}: {e}") from e

    @staticmethod
    def save(package: Package, path: str | Path) -> Path:
        target = Path(path)
        save_yaml(target, {
            "format": FORMAT_NAME,
            "format_version": FORMAT_VERSION,
            "package": package.to_dict(),
        })
        logger.debug("包文件已写入: %s", target)
        return target
