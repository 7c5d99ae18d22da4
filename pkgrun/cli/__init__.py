"""pkgrun 命令行接口

CLI 按领域拆分为子模块，每个模块注册自己的命令到 main group。
"""

import os
from typing import Any

import click

from pkgrun import __version__
from pkgrun.core.exceptions import PkgRunError
from pkgrun.services.container import get_container
from pkgrun.utils.logger import setup_logging


def _svc() -> Any:
    """获取全局服务容器的快捷方式"""
    return get_container()


class _Group(click.Group):
    """把领域异常转换为 ClickException，输出一行错误信息并以非零码退出"""

    def invoke(self, ctx: click.Context) -> Any:
        try:
            return super().invoke(ctx)
        except PkgRunError as e:
            raise click.ClickException(f"[{e.code}] {e}") from e


@click.group(cls=_Group)
@click.version_option(version=__version__)
def main() -> None:
    """pkgrun - 软件包安装与执行运行时"""
    setup_logging(
        level=os.getenv("PKGRUN_LOG_LEVEL", "INFO"),
        json_output=os.getenv("PKGRUN_LOG_JSON", "") == "1",
    )
    config_path = os.getenv("PKGRUN_CONFIG", "")
    if config_path:
        from pkgrun.core.config import init_config
        init_config(config_path)


# 注册各领域子命令
from pkgrun.cli.cmd_package import register as _reg_package  # noqa: E402
from pkgrun.cli.cmd_exec import register as _reg_exec  # noqa: E402
from pkgrun.cli.cmd_sources import register as _reg_sources  # noqa: E402

_reg_package(main)
_reg_exec(main)
_reg_sources(main)
