"""远程源查询结果与合并规则"""

from __future__ import annotations

from dataclasses import dataclass, field, fields

from pkgrun.core.versions import higher_version


@dataclass
class RepositoryFiles:
    """可下载的目标"""

    zipball_url: str | None = None
    tarball_url: str | None = None
    package_url: str | None = None
    git_http_url: str | None = None
    git_ssh_url: str | None = None

    @property
    def git_url(self) -> str | None:
        return self.git_http_url or self.git_ssh_url

    def offered(self) -> bool:
        return any(getattr(self, f.name) for f in fields(self))


def _prefer_text(current: str | None, new: str | None) -> str | None:
    """只有一方有值时取有值者，双方都有时取较长者"""
    if not current:
        return new or current
    if not new:
        return current
    return new if len(new) > len(current) else current


@dataclass
class RepositoryQueryResults:
    files: RepositoryFiles = field(default_factory=RepositoryFiles)
    version: str | None = None
    release_name: str | None = None
    release_description: str | None = None

    def merge(self, other: RepositoryQueryResults) -> RepositoryQueryResults:
        """把 other 合并进来并返回 self

        名称 / 描述取较长者；版本取较高者；下载目标以 other 中非空的值覆盖。
        """
        self.release_name = _prefer_text(self.release_name, other.release_name)
        self.release_description = _prefer_text(self.release_description, other.release_description)

        if not self.version:
            self.version = other.version
        elif other.version:
            self.version = higher_version(self.version, other.version)

        for f in fields(RepositoryFiles):
            value = getattr(other.files, f.name)
            if value is not None:
                setattr(self.files, f.name, value)
        return self

    @classmethod
    def combine(cls, *results: RepositoryQueryResults) -> RepositoryQueryResults:
        """按给定顺序依次合并"""
        merged = cls()
        for result in results:
            merged.merge(result)
        return merged
