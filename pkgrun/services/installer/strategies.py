"""安装策略（按包的编译扩展标签选择）

- generic: 按 data_type 解码组件，资源原样写入
- python: 同 generic，post_install 时在 data 目录写入 .pth 路径文件，
  使 source 目录可被解释器导入
"""

from __future__ import annotations

import base64
import binascii
import logging

from pkgrun.core.exceptions import UnsupportedExtensionError, ValidationError
from pkgrun.core.models import Component, ComponentDataType, InstallationPaths, Resource
from pkgrun.core.protocols import InstallerStrategy
from pkgrun.utils.yaml_io import atomic_write

logger = logging.getLogger(__name__)


class GenericStrategy:
    """通用安装策略"""

    def pre_install(self, paths: InstallationPaths) -> None:
        logger.debug("generic pre_install: %s", paths.root)

    def post_install(self, paths: InstallationPaths) -> None:
        logger.debug("generic post_install: %s", paths.root)

    def process_component(self, component: Component) -> bytes | None:
        if component.data_type == ComponentDataType.BASE64_ENCODED:
            try:
                return base64.b64decode(component.data, validate=True)
            except (binascii.Error, ValueError) as e:
                raise ValidationError(f"组件 {component.name} 不是有效的 base64: {e}") from e
        return component.data

    def process_resource(self, resource: Resource) -> bytes | None:
        return resource.data


class PythonStrategy(GenericStrategy):
    """Python 包安装策略"""

    pth_name = "pkgrun-source.pth"

    def post_install(self, paths: InstallationPaths) -> None:
        pth = paths.data_path / self.pth_name
        atomic_write(pth, f"{paths.source_path}\n")
        logger.debug("python post_install: 写入 %s", pth)


STRATEGIES: dict[str, type] = {
    "generic": GenericStrategy,
    "python": PythonStrategy,
}


def get_strategy(tag: str) -> InstallerStrategy:
    strategy = STRATEGIES.get(tag)
    if strategy is None:
        raise UnsupportedExtensionError(f"不支持的编译扩展: {tag}")
    return strategy()
