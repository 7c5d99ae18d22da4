"""安装服务模块

- installer.py: 安装 / 卸载 / 查询
- strategies.py: 按编译扩展选择的安装策略
- progress.py: 进度统计
- context.py: 单次安装运行的去重上下文
"""

from pkgrun.services.installer.context import InstallContext
from pkgrun.services.installer.installer import PackageInstaller
from pkgrun.services.installer.progress import ProgressTracker
from pkgrun.services.installer.strategies import GenericStrategy, PythonStrategy, get_strategy

__all__ = [
    "PackageInstaller",
    "InstallContext",
    "ProgressTracker",
    "GenericStrategy",
    "PythonStrategy",
    "get_strategy",
]
