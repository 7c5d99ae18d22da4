"""Git 仓库操作: clone / 标签列表 / 检出"""

from __future__ import annotations

import logging
import re
from pathlib import Path

from pkgrun.core.exceptions import ValidationError
from pkgrun.utils.shell import CommandExecutor, run_cmd

logger = logging.getLogger(__name__)

_SAFE_REF_RE = re.compile(r"^[a-zA-Z0-9_./@+\-]+$")


class GitClient:
    """基于 git 命令行的客户端"""

    def __init__(self, executor: CommandExecutor | None = None, timeout: int | None = None) -> None:
        self._executor = executor
        self._timeout = timeout

    def clone(self, url: str, dest: Path, branch: str | None = None) -> Path:
        if branch and not _SAFE_REF_RE.match(branch):
            raise ValidationError(f"分支名包含非法字符: {branch}")
        dest.parent.mkdir(parents=True, exist_ok=True)
        cmd = ["git", "clone", "--quiet"]
        if branch:
            cmd += ["--branch", branch]
        cmd += [url, str(dest)]
        run_cmd(cmd, label="git clone", timeout=self._timeout, executor=self._executor)
        logger.info("Git 克隆完成: %s -> %s", url, dest)
        return dest

    def get_tags(self, repo: Path) -> list[str]:
        run_cmd(
            ["git", "fetch", "--tags", "--quiet"], cwd=str(repo),
            label="git fetch --tags", timeout=self._timeout, executor=self._executor,
        )
        r = run_cmd(
            ["git", "tag", "--list"], cwd=str(repo),
            label="git tag", timeout=self._timeout, executor=self._executor,
        )
        return [line.strip() for line in r.stdout.splitlines() if line.strip()]

    def checkout(self, repo: Path, ref: str) -> None:
        if not _SAFE_REF_RE.match(ref):
            raise ValidationError(f"ref 包含非法字符: {ref}")
        run_cmd(
            ["git", "checkout", "--quiet", ref], cwd=str(repo),
            label="git checkout", timeout=self._timeout, executor=self._executor,
        )
        logger.debug("Git 检出: %s @ %s", repo, ref)
