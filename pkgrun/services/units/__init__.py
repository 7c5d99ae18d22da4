"""执行单元服务模块

- runners.py: runner 解析与解释器进程拉起
- registry.py: 执行单元注册 / 注销 / 执行 / 退出处理
"""

from pkgrun.services.units.registry import ExecutionUnitRegistry
from pkgrun.services.units.runners import RUNNERS, Runner, get_runner

__all__ = [
    "ExecutionUnitRegistry",
    "Runner",
    "RUNNERS",
    "get_runner",
]
