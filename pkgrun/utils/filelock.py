"""建议性文件锁

锁文件的 读取 → 修改 → 落盘 序列在同一作用域内串行化，
避免两个安装进程同时改写同一个锁文件。
"""

from __future__ import annotations

import fcntl
import logging
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

logger = logging.getLogger(__name__)


@contextmanager
def advisory_lock(target: Path) -> Iterator[None]:
    """对 <target>.lock 加排他锁，退出作用域时释放"""
    lock_path = target.with_name(target.name + ".lock")
    lock_path.parent.mkdir(parents=True, exist_ok=True)
    with open(lock_path, "a+") as handle:
        logger.debug("获取文件锁: %s", lock_path)
        fcntl.flock(handle.fileno(), fcntl.LOCK_EX)
        try:
            yield
        finally:
            fcntl.flock(handle.fileno(), fcntl.LOCK_UN)
            logger.debug("释放文件锁: %s", lock_path)
