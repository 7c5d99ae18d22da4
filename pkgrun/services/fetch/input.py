"""远程包定位串解析

格式: vendor/package[=version][:branch]@source
例如: acme/toolkit=1.2.0@index、acme/toolkit@pypi
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from pkgrun.core.exceptions import ValidationError
from pkgrun.core.versions import LATEST

_INPUT_RE = re.compile(
    r"^(?P<vendor>[^/\n]+)/(?P<package>[^:=\n@]+)"
    r"(?:=(?P<version>[^:@\n]+))?"
    r"(?::(?P<branch>[^@\n]+))?"
    r"@(?P<source>.*)$"
)


@dataclass
class RemotePackageInput:
    vendor: str
    package: str
    source: str
    version: str = LATEST
    branch: str | None = None

    @classmethod
    def parse(cls, text: str) -> RemotePackageInput:
        match = _INPUT_RE.match(text.strip())
        if match is None:
            raise ValidationError(f"无效的远程包定位串: {text}")
        source = match.group("source").strip()
        if not source:
            raise ValidationError(f"远程包定位串缺少来源: {text}")
        return cls(
            vendor=match.group("vendor").strip(),
            package=match.group("package").strip(),
            source=source,
            version=(match.group("version") or LATEST).strip(),
            branch=match.group("branch"),
        )

    def __str__(self) -> str:
        text = f"{self.vendor}/{self.package}"
        if self.version and self.version != LATEST:
            text += f"={self.version}"
        if self.branch:
            text += f":{self.branch}"
        return f"{text}@{self.source}"
