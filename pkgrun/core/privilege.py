"""权限作用域判定

只有 system 作用域可以修改共享状态（锁文件、执行单元、符号链接、远程源）。
Config.scope 可强制指定作用域，auto 时按有效 uid 判断。
"""

from __future__ import annotations

import os
from collections.abc import Callable

from pkgrun.core.config import get_config
from pkgrun.core.exceptions import PrivilegeError
from pkgrun.core.models import Scope

ScopeResolver = Callable[[], Scope]


def resolve_scope() -> Scope:
    """返回当前进程的权限作用域"""
    configured = get_config().scope
    if configured != "auto":
        return Scope(configured)
    return Scope.SYSTEM if os.geteuid() == 0 else Scope.USER


def require_system(resolver: ScopeResolver, action: str) -> None:
    """非 system 作用域时抛 PrivilegeError"""
    scope = resolver()
    if scope != Scope.SYSTEM:
        raise PrivilegeError(f"{action}需要 system 权限 (当前作用域: {scope.value})")
