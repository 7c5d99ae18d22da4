"""内置获取策略

不需要在远程源注册表中定义的固定来源。目前只有 pypi:
从 PyPI JSON API 解析源码发行包（sdist），下载解压后交给 SourceBuilder。
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Protocol
from urllib.parse import quote

from pkgrun.core.exceptions import FetchError
from pkgrun.core.models import Credential
from pkgrun.core.versions import LATEST
from pkgrun.services.fetch.archives import extract_archive
from pkgrun.services.fetch.builder import SourceBuilder
from pkgrun.services.fetch.download import download_file, get_json
from pkgrun.services.fetch.input import RemotePackageInput

logger = logging.getLogger(__name__)

PYPI_URL = "https://pypi.org/pypi"


class BuiltinSource(Protocol):
    def fetch(self, request: RemotePackageInput, credential: Credential | None = None) -> Path:
        ...


class PyPISource:
    """PyPI 源码发行包"""

    def __init__(
        self, cache_dir: Path, builder: SourceBuilder,
        *, timeout: int = 60, base_url: str = PYPI_URL,
    ) -> None:
        self.cache_dir = cache_dir
        self.builder = builder
        self.timeout = timeout
        self.base_url = base_url.rstrip("/")

    def release_url(self, request: RemotePackageInput) -> str:
        name = quote(request.package, safe="")
        if request.version == LATEST:
            return f"{self.base_url}/{name}/json"
        return f"{self.base_url}/{name}/{quote(request.version, safe='')}/json"

    def fetch(self, request: RemotePackageInput, credential: Credential | None = None) -> Path:
        data = get_json(self.release_url(request), credential, timeout=self.timeout)
        version = (data.get("info") or {}).get("version") or request.version
        sdist = next(
            (u for u in data.get("urls") or [] if u.get("packagetype") == "sdist"),
            None,
        )
        if sdist is None:
            raise FetchError(f"PyPI 上 {request.package}={version} 没有源码发行包")

        work_dir = self.cache_dir / "pypi" / f"{request.package}-{version}"
        archive = download_file(sdist["url"], work_dir, credential, timeout=self.timeout)
        tree = extract_archive(archive)
        return self.builder.try_compile(tree, version)
