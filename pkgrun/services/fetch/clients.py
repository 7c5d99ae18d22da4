"""远程源客户端

每种远程源类型对应一个客户端，提供三类查询:
release（归档下载）、git 仓库、原生包文件。

index 类型的 HTTP 接口:
    GET <base>/<vendor>/<package>/releases/<version>   → {version, name, description, zipball_url, tarball_url}
    GET <base>/<vendor>/<package>/repository           → {git_http_url, git_ssh_url}
    GET <base>/<vendor>/<package>/packages/<version>   → {version, package_url}
version 为 latest 时由服务端解析。static=1 表示偏好静态构建的资源。
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any, Protocol
from urllib.parse import quote

from pkgrun.core.exceptions import UnsupportedError
from pkgrun.core.models import Credential, RemoteSource
from pkgrun.services.fetch.download import get_json
from pkgrun.services.fetch.input import RemotePackageInput
from pkgrun.services.fetch.results import RepositoryFiles, RepositoryQueryResults

logger = logging.getLogger(__name__)


class SourceClient(Protocol):
    def get_release(
        self, request: RemotePackageInput, source: RemoteSource,
        credential: Credential | None = None, *, static: bool = False,
    ) -> RepositoryQueryResults:
        ...

    def get_git_repository(
        self, request: RemotePackageInput, source: RemoteSource,
        credential: Credential | None = None, *, static: bool = False,
    ) -> RepositoryQueryResults:
        ...

    def get_native_package(
        self, request: RemotePackageInput, source: RemoteSource,
        credential: Credential | None = None, *, static: bool = False,
    ) -> RepositoryQueryResults:
        ...


def _str_or_none(data: dict[str, Any], key: str) -> str | None:
    value = data.get(key)
    return str(value) if value else None


class IndexClient:
    """通用 HTTP 索引客户端"""

    def __init__(self, timeout: int = 60) -> None:
        self.timeout = timeout

    def _url(self, request: RemotePackageInput, source: RemoteSource, *parts: str, static: bool) -> str:
        path = "/".join(quote(p, safe="") for p in (request.vendor, request.package, *parts))
        url = f"{source.base_url.rstrip('/')}/{path}"
        return url + "?static=1" if static else url

    def _query(self, url: str, credential: Credential | None) -> dict[str, Any]:
        data = get_json(url, credential, timeout=self.timeout)
        return data if isinstance(data, dict) else {}

    def get_release(
        self, request: RemotePackageInput, source: RemoteSource,
        credential: Credential | None = None, *, static: bool = False,
    ) -> RepositoryQueryResults:
        data = self._query(self._url(request, source, "releases", request.version, static=static), credential)
        return RepositoryQueryResults(
            files=RepositoryFiles(
                zipball_url=_str_or_none(data, "zipball_url"),
                tarball_url=_str_or_none(data, "tarball_url"),
            ),
            version=_str_or_none(data, "version"),
            release_name=_str_or_none(data, "name"),
            release_description=_str_or_none(data, "description"),
        )

    def get_git_repository(
        self, request: RemotePackageInput, source: RemoteSource,
        credential: Credential | None = None, *, static: bool = False,
    ) -> RepositoryQueryResults:
        data = self._query(self._url(request, source, "repository", static=static), credential)
        return RepositoryQueryResults(
            files=RepositoryFiles(
                git_http_url=_str_or_none(data, "git_http_url"),
                git_ssh_url=_str_or_none(data, "git_ssh_url"),
            ),
            version=_str_or_none(data, "version"),
            release_name=_str_or_none(data, "name"),
            release_description=_str_or_none(data, "description"),
        )

    def get_native_package(
        self, request: RemotePackageInput, source: RemoteSource,
        credential: Credential | None = None, *, static: bool = False,
    ) -> RepositoryQueryResults:
        data = self._query(self._url(request, source, "packages", request.version, static=static), credential)
        return RepositoryQueryResults(
            files=RepositoryFiles(package_url=_str_or_none(data, "package_url")),
            version=_str_or_none(data, "version"),
        )


ClientFactory = Callable[[int], SourceClient]

CLIENTS: dict[str, ClientFactory] = {
    "index": IndexClient,
}


def get_client(source_type: str, timeout: int = 60) -> SourceClient:
    factory = CLIENTS.get(source_type)
    if factory is None:
        raise UnsupportedError(f"不支持的远程源类型: {source_type}")
    return factory(timeout)
