"""远程源注册表

名称 → {host, type, ssl}。安装包声明的仓库和更新源仓库
在安装时登记到这里，远程获取时按名称查找。
"""

from __future__ import annotations

import logging

from pkgrun.core.exceptions import ValidationError
from pkgrun.core.models import RemoteSource
from pkgrun.core.privilege import ScopeResolver, require_system, resolve_scope
from pkgrun.core.registry import YamlRegistry

logger = logging.getLogger(__name__)

SOURCE_TYPES = ("index",)


class RemoteSourceRegistry(YamlRegistry):
    """远程源注册表"""

    section_key = "sources"
    config_key = "sources_file"

    def __init__(
        self,
        registry_file: str = "",
        *,
        scope_resolver: ScopeResolver = resolve_scope,
    ) -> None:
        super().__init__(registry_file)
        self._scope_resolver = scope_resolver

    def add(self, source: RemoteSource) -> RemoteSource:
        require_system(self._scope_resolver, f"添加远程源 '{source.name}'")
        if not source.name:
            raise ValidationError("远程源 name 不能为空")
        if not source.host:
            raise ValidationError(f"远程源 '{source.name}' 缺少 host")
        if source.type not in SOURCE_TYPES:
            raise ValidationError(
                f"远程源 '{source.name}' 类型无效: {source.type}，可选值: {', '.join(SOURCE_TYPES)}"
            )
        self._put(source.name, source.to_dict())
        logger.info("远程源已登记: %s (%s)", source.name, source.base_url)
        return source

    def get(self, name: str) -> RemoteSource | None:
        raw = self._get_raw(name)
        if raw is None:
            return None
        return RemoteSource.from_dict({"name": name, **raw})

    def exists(self, name: str) -> bool:
        return self._get_raw(name) is not None

    def list_all(self) -> list[RemoteSource]:
        return [RemoteSource.from_dict(e) for e in self._list_raw()]

    def remove(self, name: str) -> bool:
        require_system(self._scope_resolver, f"删除远程源 '{name}'")
        return self._remove(name)
