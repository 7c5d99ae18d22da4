"""定长哈希单元测试"""

from __future__ import annotations

import re

from pkgrun.utils.hashing import fixed_hash, package_id, unit_id


class TestHashing:
    def test_fixed_length_hex(self) -> None:
        for text in ("", "a", "com.example.foo" * 50):
            assert re.fullmatch(r"[0-9a-f]{32}", fixed_hash(text))

    def test_deterministic(self) -> None:
        assert unit_id("main") == unit_id("main")
        assert unit_id("main") != unit_id("setup")

    def test_package_id_concatenates(self) -> None:
        assert package_id("foo", "1.0") == fixed_hash("foo1.0")
        assert package_id("foo", "1.0") != package_id("foo", "1.1")
