"""安装进度

总步数 = 4 (创建目录、写元数据、策略 pre_install、策略 post_install)
       + 组件数 + 资源数 + 执行单元数 + pre 钩子单元数 + post 钩子单元数
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from pkgrun.core.models import Package

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]

FIXED_STEPS = 4


def total_steps(package: Package) -> int:
    hooks = package.installer
    pre = len(hooks.pre_install) if hooks else 0
    post = len(hooks.post_install) if hooks else 0
    return (
        FIXED_STEPS
        + len(package.components)
        + len(package.resources)
        + len(package.execution_units)
        + pre + post
    )


class ProgressTracker:
    """单调递增、不超过总数的进度计数器"""

    def __init__(self, total: int, callback: ProgressCallback | None = None) -> None:
        self.total = total
        self.current = 0
        self._callback = callback

    @classmethod
    def for_package(cls, package: Package, callback: ProgressCallback | None = None) -> ProgressTracker:
        return cls(total_steps(package), callback)

    def advance(self, step: str = "") -> None:
        if self.current >= self.total:
            logger.debug("进度已满，忽略多余的步骤: %s", step)
            return
        self.current += 1
        logger.debug("[%d/%d] %s", self.current, self.total, step,
                     extra={"step": self.current, "total": self.total})
        if self._callback is not None:
            self._callback(self.current, self.total)
