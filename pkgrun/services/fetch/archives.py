"""归档解压（zip / tar.*）"""

from __future__ import annotations

import logging
import tarfile
import zipfile
from pathlib import Path

from pkgrun.core.exceptions import IOFailureError, UnsupportedError

logger = logging.getLogger(__name__)


def _safe_zip_members(zf: zipfile.ZipFile, dest: Path) -> list[str]:
    root = dest.resolve()
    names = []
    for name in zf.namelist():
        target = (dest / name).resolve()
        if root != target and root not in target.parents:
            raise IOFailureError(f"归档成员越界: {name}")
        names.append(name)
    return names


def extract_archive(archive: Path, dest: Path | None = None) -> Path:
    """解压归档到 dest（默认与归档同名的目录），返回解压目录"""
    if dest is None:
        stem = archive.name
        for suffix in (".tar.gz", ".tar.bz2", ".tar.xz", ".tgz", ".tar", ".zip"):
            if stem.endswith(suffix):
                stem = stem[: -len(suffix)]
                break
        dest = archive.parent / f"{stem}.extracted"
    dest.mkdir(parents=True, exist_ok=True)

    try:
        if zipfile.is_zipfile(archive):
            with zipfile.ZipFile(archive) as zf:
                zf.extractall(path=str(dest), members=_safe_zip_members(zf, dest))  # noqa: S202
        elif tarfile.is_tarfile(archive):
            with tarfile.open(archive) as tf:
                tf.extractall(path=str(dest), filter="data")  # noqa: S202
        else:
            raise UnsupportedError(f"不支持的归档格式: {archive}")
    except (OSError, zipfile.BadZipFile, tarfile.TarError) as e:
        raise IOFailureError(f"解压失败 {archive}: {e}") from e

    logger.debug("解压完成: %s -> %s", archive, dest)
    return dest
