"""远程获取级联

职责:
- 解析定位串，区分内置来源与远程源注册表中定义的来源
- 查询原生包 / git 仓库 / release 三类元数据并按固定顺序合并
- 按 zip → tarball → 包文件 → git 标签检出 的顺序尝试，第一个成功即返回
- 全部失败时汇总每次尝试的失败原因抛出 FetchError
"""

from __future__ import annotations

import logging
import shutil
import subprocess
import tempfile
from collections.abc import Callable, Iterable
from pathlib import Path

from pkgrun.core.exceptions import (
    FetchAttempt,
    FetchError,
    PkgRunError,
    SourceNotFoundError,
)
from pkgrun.core.models import Credential, InstallOption, RemoteSource
from pkgrun.core.protocols import SourceRegistry
from pkgrun.core.versions import LATEST, latest_of, versions_equal
from pkgrun.services.fetch.archives import extract_archive
from pkgrun.services.fetch.builder import SourceBuilder
from pkgrun.services.fetch.builtin import BuiltinSource, PyPISource
from pkgrun.services.fetch.clients import SourceClient, get_client
from pkgrun.services.fetch.download import download_file
from pkgrun.services.fetch.git import GitClient
from pkgrun.services.fetch.input import RemotePackageInput
from pkgrun.services.fetch.results import RepositoryQueryResults

logger = logging.getLogger(__name__)

_ATTEMPT_ERRORS = (PkgRunError, OSError, subprocess.SubprocessError)


class RemoteFetchCascade:
    """把远程依赖定位串转换为本地可安装的包文件"""

    def __init__(
        self,
        sources: SourceRegistry,
        cache_dir: str | Path = "",
        *,
        http_timeout: int = 60,
        builder: SourceBuilder | None = None,
        git: GitClient | None = None,
        builtins: dict[str, BuiltinSource] | None = None,
        client_factory: Callable[[str, int], SourceClient] = get_client,
        downloader: Callable[..., Path] = download_file,
        extractor: Callable[[Path], Path] = extract_archive,
    ) -> None:
        if not cache_dir:
            from pkgrun.core.config import get_config
            cache_dir = get_config().cache_dir
        self.sources = sources
        self.cache_dir = Path(cache_dir)
        self.http_timeout = http_timeout
        self.builder = builder or SourceBuilder(self.cache_dir / "built")
        self.git = git or GitClient()
        self.builtins: dict[str, BuiltinSource] = builtins if builtins is not None else {
            "pypi": PyPISource(self.cache_dir, self.builder, timeout=http_timeout),
        }
        self._client_factory = client_factory
        self._download = downloader
        self._extract = extractor

    def fetch(
        self,
        source: str,
        credential: Credential | None = None,
        options: Iterable[InstallOption | str] = (),
    ) -> Path:
        request = RemotePackageInput.parse(source)
        opts = {InstallOption(o) for o in options}
        logger.info("获取远程包 %s/%s (%s) 来源 %s",
                    request.vendor, request.package, request.version, request.source)

        builtin = self.builtins.get(request.source)
        if builtin is not None:
            logger.debug("使用内置来源: %s", request.source)
            try:
                return builtin.fetch(request, credential)
            except _ATTEMPT_ERRORS as e:
                raise FetchError(f"无法从内置来源 {request.source} 获取 {request.package}: {e}") from e

        remote = self.sources.get(request.source)
        if remote is None:
            raise SourceNotFoundError(f"远程源 '{request.source}' 未定义")

        results = self.query(request, remote, credential, static=InstallOption.STATIC in opts)
        return self._cascade(
            request, results, credential,
            build_source=InstallOption.BUILD_SOURCE in opts,
        )

    def query(
        self,
        request: RemotePackageInput,
        remote: RemoteSource,
        credential: Credential | None = None,
        *,
        static: bool = False,
    ) -> RepositoryQueryResults:
        """依次查询 原生包 → git → release 并合并，单项查询失败只记录"""
        client = self._client_factory(remote.type, self.http_timeout)
        queries = (
            ("package", client.get_native_package),
            ("git", client.get_git_repository),
            ("release", client.get_release),
        )
        merged = RepositoryQueryResults()
        for kind, query in queries:
            try:
                merged.merge(query(request, remote, credential, static=static))
            except _ATTEMPT_ERRORS as e:
                logger.debug("远程源 %s 查询 %s 失败: %s", remote.name, kind, e)
        return merged

    def _work_dir(self, request: RemotePackageInput) -> Path:
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        return Path(tempfile.mkdtemp(prefix=f"{request.package}-", dir=self.cache_dir))

    def _keep(self, path: Path, work_dir: Path) -> Path:
        """工作目录内的包文件移到 <cache_dir>/packages，工作目录随后删除"""
        if work_dir not in path.parents:
            return path
        dest_dir = self.cache_dir / "packages"
        dest_dir.mkdir(parents=True, exist_ok=True)
        dest = dest_dir / path.name
        shutil.move(str(path), str(dest))
        return dest

    def _cascade(
        self,
        request: RemotePackageInput,
        results: RepositoryQueryResults,
        credential: Credential | None,
        *,
        build_source: bool = False,
    ) -> Path:
        files = results.files
        version = results.version or request.version
        attempts: list[FetchAttempt] = []
        work_dir = self._work_dir(request)

        def from_archive(url: str, kind: str) -> Path:
            archive = self._download(url, work_dir / kind, credential, timeout=self.http_timeout)
            return self.builder.try_compile(self._extract(archive), version)

        candidates: list[tuple[str, str | None, Callable[[str], Path]]] = [
            ("zip", files.zipball_url, lambda url: from_archive(url, "zip")),
            ("tarball", files.tarball_url, lambda url: from_archive(url, "tarball")),
        ]
        if build_source:
            if files.package_url:
                logger.debug("build-source: 跳过预构建包 %s", files.package_url)
        else:
            candidates.append((
                "package", files.package_url,
                lambda url: self._download(url, work_dir / "package", credential, timeout=self.http_timeout),
            ))
        candidates.append((
            "git", files.git_url,
            lambda url: self._from_git(url, work_dir / "git", request, version),
        ))

        try:
            for kind, url, attempt in candidates:
                if not url:
                    continue
                logger.debug("尝试 %s: %s", kind, url)
                try:
                    result = attempt(url)
                except _ATTEMPT_ERRORS as e:
                    logger.debug("%s 获取失败: %s", kind, e)
                    attempts.append(FetchAttempt(kind, str(e)))
                else:
                    return self._keep(result, work_dir)
        finally:
            shutil.rmtree(work_dir, ignore_errors=True)

        if not attempts:
            raise FetchError(f"无法从远程源获取 {request}，未找到任何可下载的资源")
        raise FetchError(f"无法从远程源获取 {request}", attempts)

    def _from_git(self, url: str, dest: Path, request: RemotePackageInput, version: str) -> Path:
        repo = self.git.clone(url, dest, branch=request.branch)
        tags = self.git.get_tags(repo)
        if version == LATEST:
            tag = latest_of(tags)
            if tag is None:
                logger.debug("仓库没有标签，使用默认分支构建: %s", url)
                return self.builder.try_compile(repo, version)
        else:
            tag = next((t for t in tags if versions_equal(t, version)), None)
            if tag is None:
                raise FetchError(f"git 仓库中没有与版本 {version} 匹配的标签")
        self.git.checkout(repo, tag)
        return self.builder.try_compile(repo, version)
