"""SymlinkRegistry 单元测试"""

from __future__ import annotations

import os

import pytest

from pkgrun.core.exceptions import PrivilegeError
from pkgrun.core.models import Scope
from pkgrun.services.lock_store import LockCache, PackageLockStore
from pkgrun.services.symlinks import SymlinkEntry, SymlinkRegistry
from pkgrun.services.units.registry import ExecutionUnitRegistry

PKG = "com.example.foo"


class TestSymlinkRegistry:
    @pytest.fixture()
    def env(self, tmp_path):
        system = lambda: Scope.SYSTEM  # noqa: E731
        store = PackageLockStore(str(tmp_path / "lock.yml"), scope_resolver=system, cache=LockCache())
        units = ExecutionUnitRegistry(str(tmp_path / "runners"), program="pkgrun", scope_resolver=system)
        links = SymlinkRegistry(
            str(tmp_path / "symlinks.yml"), bin_dir=str(tmp_path / "bin"),
            lock_store=store, units=units, scope_resolver=system,
        )
        return store, units, links

    def test_command_name(self) -> None:
        assert SymlinkEntry("com.example.foo").command_name == "foo"
        assert SymlinkEntry("tool").command_name == "tool"

    def test_add_and_get(self, env) -> None:
        _, _, links = env
        links.add(PKG, "main")
        entry = links.get(PKG)
        assert entry.unit == "main"
        assert entry.registered is False
        assert links.exists(PKG)

    def test_sync_links_latest_version(self, env, make_package) -> None:
        store, units, links = env
        lock = store.get_package_lock()
        lock.add_package(make_package(PKG, "1.0.0"), "/a")
        lock.add_package(make_package(PKG, "1.2.0"), "/b")
        links.add(PKG, "main")

        links.sync()

        link = links.link_path(PKG)
        assert link.is_symlink()
        assert os.readlink(link) == str(units.get_entry_point_path(PKG, "1.2.0", "main"))
        assert links.get(PKG).registered is True

    def test_sync_repoints_after_latest_removed(self, env, make_package) -> None:
        store, units, links = env
        lock = store.get_package_lock()
        lock.add_package(make_package(PKG, "1.0.0"), "/a")
        lock.add_package(make_package(PKG, "2.0.0"), "/b")
        links.add(PKG, "main")
        links.sync()

        lock.remove_package_version(PKG, "2.0.0")
        links.sync()

        link = links.link_path(PKG)
        assert os.readlink(link) == str(units.get_entry_point_path(PKG, "1.0.0", "main"))
        assert links.get(PKG).registered is True

    def test_sync_keeps_current_link(self, env, make_package) -> None:
        store, _, links = env
        store.get_package_lock().add_package(make_package(PKG), "/a")
        links.add(PKG)
        links.sync()
        before = links.link_path(PKG).lstat().st_ino

        links.sync()
        assert links.link_path(PKG).lstat().st_ino == before

    def test_sync_removes_uninstalled(self, env, make_package) -> None:
        store, _, links = env
        lock = store.get_package_lock()
        lock.add_package(make_package(PKG), "/a")
        links.add(PKG)
        links.sync()
        assert links.link_path(PKG).is_symlink()

        lock.remove_package(PKG)
        links.sync()
        assert not links.link_path(PKG).is_symlink()
        assert not links.exists(PKG)

    def test_sync_skipped_in_user_scope(self, tmp_path, make_package) -> None:
        store = PackageLockStore(str(tmp_path / "lock.yml"), scope_resolver=lambda: Scope.SYSTEM,
                                 cache=LockCache())
        store.get_package_lock().add_package(make_package(PKG), "/a")
        units = ExecutionUnitRegistry(str(tmp_path / "r"), program="pkgrun")
        links = SymlinkRegistry(
            str(tmp_path / "symlinks.yml"), bin_dir=str(tmp_path / "bin"),
            lock_store=store, units=units, scope_resolver=lambda: Scope.USER,
        )
        links._put(PKG, {"unit": "main", "registered": False})
        links.sync()
        assert not links.link_path(PKG).exists()

    def test_re_add_replaces_link(self, env, make_package) -> None:
        store, _, links = env
        store.get_package_lock().add_package(make_package(PKG), "/a")
        links.add(PKG, "main")
        links.sync()
        links.add(PKG, "other")
        assert not links.link_path(PKG).is_symlink()
        assert links.get(PKG).unit == "other"

    def test_remove(self, env, make_package) -> None:
        store, _, links = env
        store.get_package_lock().add_package(make_package(PKG), "/a")
        links.add(PKG)
        links.sync()
        assert links.remove(PKG) is True
        assert not links.link_path(PKG).is_symlink()
        assert links.remove(PKG) is False

    def test_persisted(self, env, tmp_path) -> None:
        _, _, links = env
        links.add(PKG, "main")
        reloaded = SymlinkRegistry(str(tmp_path / "symlinks.yml"), bin_dir=str(tmp_path / "bin"))
        assert [e.package for e in reloaded.entries()] == [PKG]

    def test_add_requires_system(self, tmp_path) -> None:
        links = SymlinkRegistry(str(tmp_path / "s.yml"), bin_dir=str(tmp_path / "bin"),
                                scope_resolver=lambda: Scope.USER)
        with pytest.raises(PrivilegeError):
            links.add(PKG)
