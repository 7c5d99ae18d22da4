"""CLI：远程源管理命令"""

from __future__ import annotations

import click

from pkgrun.cli import _svc
from pkgrun.core.models import RemoteSource


def register(group: click.Group) -> None:
    group.add_command(source_group)


@click.group(name="source")
def source_group() -> None:
    """远程源管理"""


@source_group.command(name="list")
def source_list() -> None:
    """列出已登记的远程源"""
    sources = _svc().sources.list_all()
    if not sources:
        click.echo("没有已登记的远程源。")
        return
    for s in sources:
        click.echo(f"  {s.name:20s} [{s.type}] {s.base_url}")


@source_group.command(name="add")
@click.argument("name")
@click.argument("host")
@click.option("--type", "source_type", default="index", help="远程源类型")
@click.option("--no-ssl", is_flag=True, help="使用 http 而非 https")
def source_add(name: str, host: str, source_type: str, no_ssl: bool) -> None:
    """登记远程源"""
    source = _svc().sources.add(RemoteSource(name=name, host=host, type=source_type, ssl=not no_ssl))
    click.echo(f"远程源已登记: {source.name} -> {source.base_url}")


@source_group.command(name="remove")
@click.argument("name")
def source_remove(name: str) -> None:
    """删除远程源"""
    if _svc().sources.remove(name):
        click.echo(f"远程源已删除: {name}")
    else:
        click.echo(f"远程源不存在: {name}")
