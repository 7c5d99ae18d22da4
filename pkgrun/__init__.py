"""pkgrun - 软件包安装与执行运行时"""

__version__ = "0.1.0"
