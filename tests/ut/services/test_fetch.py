"""远程获取级联单元测试"""

from __future__ import annotations

from pathlib import Path

import pytest

from pkgrun.core.exceptions import FetchError, SourceNotFoundError, ValidationError
from pkgrun.core.models import RemoteSource
from pkgrun.services.fetch.cascade import RemoteFetchCascade
from pkgrun.services.fetch.input import RemotePackageInput
from pkgrun.services.fetch.results import RepositoryFiles, RepositoryQueryResults


class TestRemotePackageInput:
    def test_full(self) -> None:
        r = RemotePackageInput.parse("acme/toolkit=1.2.0:develop@index")
        assert (r.vendor, r.package, r.version, r.branch, r.source) == (
            "acme", "toolkit", "1.2.0", "develop", "index",
        )
        assert str(r) == "acme/toolkit=1.2.0:develop@index"

    def test_defaults_to_latest(self) -> None:
        r = RemotePackageInput.parse("acme/toolkit@pypi")
        assert r.version == "latest"
        assert r.branch is None
        assert str(r) == "acme/toolkit@pypi"

    @pytest.mark.parametrize("text", ["toolkit@index", "acme/toolkit", "acme/toolkit@", ""])
    def test_invalid(self, text) -> None:
        with pytest.raises(ValidationError):
            RemotePackageInput.parse(text)


class TestQueryResultsMerge:
    def test_merge_rules(self) -> None:
        merged = RepositoryQueryResults(
            files=RepositoryFiles(zipball_url="https://a/zip", package_url="https://a/pkg"),
            version="1.2.0", release_name="short", release_description="a long description",
        )
        merged.merge(RepositoryQueryResults(
            files=RepositoryFiles(zipball_url="https://b/zip", git_ssh_url="git@b:x.git"),
            version="1.10.0", release_name="longer name", release_description="short",
        ))
        assert merged.version == "1.10.0"
        assert merged.release_name == "longer name"
        assert merged.release_description == "a long description"
        assert merged.files.zipball_url == "https://b/zip"
        assert merged.files.package_url == "https://a/pkg"
        assert merged.files.git_url == "git@b:x.git"

    def test_combine_empty(self) -> None:
        combined = RepositoryQueryResults.combine(RepositoryQueryResults(), RepositoryQueryResults())
        assert combined.version is None
        assert not combined.files.offered()


# ---- 级联测试替身 ----


class _Sources:
    def __init__(self, *sources: RemoteSource) -> None:
        self._sources = {s.name: s for s in sources}

    def get(self, name):
        return self._sources.get(name)

    def exists(self, name):
        return name in self._sources

    def add(self, source):
        self._sources[source.name] = source
        return source


class _Client:
    def __init__(self, native=None, git=None, release=None, fail=()) -> None:
        self.results = {"package": native, "git": git, "release": release}
        self.fail = set(fail)
        self.static_flags: list[bool] = []

    def _answer(self, kind, static):
        self.static_flags.append(static)
        if kind in self.fail:
            raise FetchError(f"{kind} 查询失败")
        return self.results[kind] or RepositoryQueryResults()

    def get_native_package(self, request, source, credential=None, *, static=False):
        return self._answer("package", static)

    def get_git_repository(self, request, source, credential=None, *, static=False):
        return self._answer("git", static)

    def get_release(self, request, source, credential=None, *, static=False):
        return self._answer("release", static)


class _Builder:
    def __init__(self, out: Path) -> None:
        self.out = out
        self.compiled: list[tuple[Path, str]] = []

    def try_compile(self, tree, version="latest"):
        self.compiled.append((tree, version))
        return self.out / "built.pkg"


class _Git:
    def __init__(self, tags=(), fail_clone: bool = False) -> None:
        self.tags = list(tags)
        self.fail_clone = fail_clone
        self.checked_out: list[str] = []

    def clone(self, url, dest, branch=None):
        if self.fail_clone:
            raise FetchError("clone 失败")
        dest.mkdir(parents=True, exist_ok=True)
        return dest

    def get_tags(self, repo):
        return self.tags

    def checkout(self, repo, ref):
        self.checked_out.append(ref)


class TestRemoteFetchCascade:
    @pytest.fixture()
    def make(self, tmp_path):
        calls: list[str] = []

        def build(client, *, git=None, fail_downloads=(), builtins=None):
            def downloader(url, dest_dir, credential=None, *, timeout=60):
                calls.append(url)
                if url in fail_downloads:
                    raise FetchError(fail_downloads[url])
                dest_dir.mkdir(parents=True, exist_ok=True)
                path = dest_dir / Path(url).name
                path.write_bytes(b"payload")
                return path

            cascade = RemoteFetchCascade(
                _Sources(RemoteSource("index", "pkgs.example.com")),
                tmp_path / "cache",
                builder=_Builder(tmp_path),
                git=git or _Git(),
                builtins=builtins if builtins is not None else {},
                client_factory=lambda source_type, timeout: client,
                downloader=downloader,
                extractor=lambda archive: archive.parent,
            )
            return cascade, calls

        return build

    def test_undefined_source(self, make) -> None:
        cascade, _ = make(_Client())
        with pytest.raises(SourceNotFoundError, match="nowhere"):
            cascade.fetch("acme/tool@nowhere")

    def test_order_zip_tarball_package(self, make) -> None:
        client = _Client(
            native=RepositoryQueryResults(files=RepositoryFiles(package_url="https://x/tool.pkg")),
            release=RepositoryQueryResults(files=RepositoryFiles(
                zipball_url="https://x/tool.zip", tarball_url="https://x/tool.tar.gz",
            )),
        )
        cascade, calls = make(client, fail_downloads={
            "https://x/tool.zip": "404", "https://x/tool.tar.gz": "404",
        })
        path = cascade.fetch("acme/tool@index")
        assert path.name == "tool.pkg"
        assert calls == ["https://x/tool.zip", "https://x/tool.tar.gz", "https://x/tool.pkg"]

    def test_zip_success_builds_source(self, make) -> None:
        client = _Client(release=RepositoryQueryResults(
            files=RepositoryFiles(zipball_url="https://x/tool.zip"), version="1.3.0",
        ))
        cascade, _ = make(client)
        path = cascade.fetch("acme/tool@index")
        assert path.name == "built.pkg"
        assert cascade.builder.compiled[0][1] == "1.3.0"

    def test_build_source_skips_package(self, make) -> None:
        git = _Git(tags=["v1.0.0", "v1.1.0"])
        client = _Client(
            native=RepositoryQueryResults(files=RepositoryFiles(package_url="https://x/tool.pkg")),
            git=RepositoryQueryResults(files=RepositoryFiles(git_http_url="https://x/tool.git")),
        )
        cascade, calls = make(client, git=git)
        path = cascade.fetch("acme/tool@index", options=["build-source"])
        assert path.name == "built.pkg"
        assert calls == []
        assert git.checked_out == ["v1.1.0"]

    def test_static_flag_passed_to_queries(self, make) -> None:
        client = _Client(native=RepositoryQueryResults(
            files=RepositoryFiles(package_url="https://x/tool.pkg"),
        ))
        cascade, _ = make(client)
        cascade.fetch("acme/tool@index", options=["static"])
        assert client.static_flags == [True, True, True]

    def test_query_failures_are_tolerated(self, make) -> None:
        client = _Client(
            release=RepositoryQueryResults(files=RepositoryFiles(zipball_url="https://x/tool.zip")),
            fail=("package", "git"),
        )
        cascade, _ = make(client)
        assert cascade.fetch("acme/tool@index").name == "built.pkg"

    def test_all_attempts_fail(self, make) -> None:
        client = _Client(
            release=RepositoryQueryResults(files=RepositoryFiles(
                zipball_url="https://x/tool.zip", tarball_url="https://x/tool.tgz",
            )),
            git=RepositoryQueryResults(files=RepositoryFiles(git_ssh_url="git@x:tool.git")),
        )
        cascade, _ = make(client, git=_Git(fail_clone=True), fail_downloads={
            "https://x/tool.zip": "401 Unauthorized", "https://x/tool.tgz": "401 Unauthorized",
        })
        with pytest.raises(FetchError) as exc:
            cascade.fetch("acme/tool@index")
        assert [a.kind for a in exc.value.attempts] == ["zip", "git"]
        assert "401 Unauthorized" in str(exc.value)
        assert "clone 失败" in str(exc.value)

    def test_work_dir_removed_and_package_kept(self, make, tmp_path) -> None:
        client = _Client(native=RepositoryQueryResults(
            files=RepositoryFiles(package_url="https://x/tool.pkg"),
        ))
        cascade, _ = make(client)
        path = cascade.fetch("acme/tool@index")
        assert path == tmp_path / "cache" / "packages" / "tool.pkg"
        assert path.read_bytes() == b"payload"
        assert [p.name for p in (tmp_path / "cache").iterdir()] == ["packages"]

    def test_work_dir_removed_on_failure(self, make, tmp_path) -> None:
        client = _Client(release=RepositoryQueryResults(
            files=RepositoryFiles(zipball_url="https://x/tool.zip"),
        ))
        cascade, _ = make(client, fail_downloads={"https://x/tool.zip": "404"})
        with pytest.raises(FetchError):
            cascade.fetch("acme/tool@index")
        assert list((tmp_path / "cache").iterdir()) == []

    def test_nothing_offered(self, make) -> None:
        cascade, _ = make(_Client())
        with pytest.raises(FetchError, match="未找到任何可下载的资源"):
            cascade.fetch("acme/tool=2.0@index")

    def test_git_latest_without_tags_uses_default_branch(self, make) -> None:
        git = _Git(tags=[])
        client = _Client(git=RepositoryQueryResults(files=RepositoryFiles(git_http_url="https://x/t.git")))
        cascade, _ = make(client, git=git)
        assert cascade.fetch("acme/tool@index").name == "built.pkg"
        assert git.checked_out == []

    def test_git_version_needs_matching_tag(self, make) -> None:
        git = _Git(tags=["v1.0.0"])
        client = _Client(git=RepositoryQueryResults(files=RepositoryFiles(git_http_url="https://x/t.git")))
        cascade, _ = make(client, git=git)
        with pytest.raises(FetchError, match="没有与版本 2.0.0 匹配的标签"):
            cascade.fetch("acme/tool=2.0.0@index")

        git.tags = ["v1.0.0", "v2.0.0"]
        cascade.fetch("acme/tool=2.0.0@index")
        assert git.checked_out == ["v2.0.0"]

    def test_builtin_source(self, make, tmp_path) -> None:
        class _Builtin:
            def fetch(self, request, credential=None):
                return tmp_path / f"{request.package}.pkg"

        cascade, _ = make(_Client(), builtins={"pypi": _Builtin()})
        assert cascade.fetch("pypi/requests@pypi") == tmp_path / "requests.pkg"

    def test_builtin_failure_wrapped(self, make) -> None:
        class _Broken:
            def fetch(self, request, credential=None):
                raise OSError("network down")

        cascade, _ = make(_Client(), builtins={"pypi": _Broken()})
        with pytest.raises(FetchError, match="network down"):
            cascade.fetch("pypi/requests@pypi")
