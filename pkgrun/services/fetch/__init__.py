"""远程获取服务模块

- input.py: 定位串解析
- results.py: 查询结果与合并规则
- clients.py: 远程源客户端（index）
- download.py / archives.py / git.py: 下载、解压、git 操作
- builder.py: 源码树 → 包文件
- builtin.py: 内置来源（pypi）
- cascade.py: 获取级联
"""

from pkgrun.services.fetch.builder import SourceBuilder
from pkgrun.services.fetch.cascade import RemoteFetchCascade
from pkgrun.services.fetch.input import RemotePackageInput
from pkgrun.services.fetch.results import RepositoryFiles, RepositoryQueryResults

__all__ = [
    "RemoteFetchCascade",
    "RemotePackageInput",
    "RepositoryFiles",
    "RepositoryQueryResults",
    "SourceBuilder",
]
