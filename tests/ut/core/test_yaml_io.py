"""YAML 读写工具单元测试"""

from __future__ import annotations

import os
import stat

import pytest
import yaml

from pkgrun.utils.yaml_io import atomic_write, load_document, load_yaml, save_yaml


class TestYamlIO:
    def test_save_and_load(self, tmp_path) -> None:
        path = tmp_path / "sub" / "a.yml"
        save_yaml(path, {"name": "中文", "data": b"\x00\xff"})
        loaded = load_yaml(path)
        assert loaded == {"name": "中文", "data": b"\x00\xff"}

    def test_missing_file(self, tmp_path) -> None:
        assert load_yaml(tmp_path / "none.yml") == {}
        assert load_document(tmp_path / "none.yml") is None

    def test_non_dict_returns_empty(self, tmp_path) -> None:
        path = tmp_path / "list.yml"
        path.write_text("- a\n- b\n", encoding="utf-8")
        assert load_yaml(path) == {}
        assert load_document(path) == ["a", "b"]

    def test_invalid_yaml_raises(self, tmp_path) -> None:
        path = tmp_path / "bad.yml"
        path.write_text("a: [\n", encoding="utf-8")
        with pytest.raises(yaml.YAMLError):
            load_yaml(path)

    def test_atomic_write_mode(self, tmp_path) -> None:
        path = tmp_path / "entry"
        atomic_write(path, "#!/bin/sh\n", mode=0o755)
        assert path.read_text() == "#!/bin/sh\n"
        assert stat.S_IMODE(os.stat(path).st_mode) == 0o755
        assert [p.name for p in tmp_path.iterdir()] == ["entry"]
