"""shell.py run_cmd 单元测试"""

from __future__ import annotations

import pytest

from pkgrun.core.exceptions import ExecutionError
from pkgrun.utils.shell import CommandResult, run_cmd


class _RecordingExecutor:
    def __init__(self, returncode: int = 0, stdout: str = "") -> None:
        self.calls: list = []
        self._result = CommandResult(returncode, stdout, "err")

    def execute(self, cmd, *, cwd=".", env=None, timeout=None) -> CommandResult:
        self.calls.append((cmd, cwd, timeout))
        return self._result


class TestRunCmd:
    def test_success(self, tmp_path) -> None:
        r = run_cmd("echo hello", cwd=str(tmp_path), label="test")
        assert r.returncode == 0
        assert "hello" in r.stdout

    def test_failure_raises(self, tmp_path) -> None:
        with pytest.raises(ExecutionError, match="cmd失败"):
            run_cmd("false", cwd=str(tmp_path))

    def test_custom_label_in_error(self, tmp_path) -> None:
        with pytest.raises(ExecutionError, match="git clone失败"):
            run_cmd(["false"], cwd=str(tmp_path), label="git clone")

    def test_env_passed(self, tmp_path) -> None:
        import os
        env = {**os.environ, "MY_TEST_VAR": "42"}
        r = run_cmd("env", cwd=str(tmp_path), env=env, label="env_test")
        assert "MY_TEST_VAR=42" in r.stdout

    def test_injected_executor(self) -> None:
        executor = _RecordingExecutor(stdout="v1.0\n")
        r = run_cmd(["git", "tag"], cwd="/repo", timeout=5, executor=executor)
        assert r.stdout == "v1.0\n"
        assert executor.calls == [(["git", "tag"], "/repo", 5)]
