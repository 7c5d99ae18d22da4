"""HTTP 下载与 JSON 查询"""

from __future__ import annotations

import json
import logging
import os
import urllib.error
import urllib.request
from pathlib import Path
from typing import Any
from urllib.parse import unquote, urlparse

from pkgrun.core.exceptions import FetchError
from pkgrun.core.models import Credential
from pkgrun.utils.net import build_request, validate_url_scheme

logger = logging.getLogger(__name__)

_CHUNK = 1024 * 256


def _filename_from(url: str, fallback: str) -> str:
    name = os.path.basename(unquote(urlparse(url).path).rstrip("/"))
    return name or fallback


def download_file(
    url: str,
    dest_dir: Path,
    credential: Credential | None = None,
    *,
    timeout: int = 60,
    filename: str = "",
) -> Path:
    """下载 url 到 dest_dir，返回本地文件路径

    响应头带 Content-Disposition 文件名时优先使用。
    """
    validate_url_scheme(url, context="download")
    dest_dir.mkdir(parents=True, exist_ok=True)
    req = build_request(url, credential)
    logger.debug("下载: %s", url)
    try:
        with urllib.request.urlopen(req, timeout=timeout) as resp:  # nosec B310
            disposition = resp.headers.get_filename()
            name = filename or disposition or _filename_from(resp.geturl() or url, "download")
            dest = dest_dir / os.path.basename(name)
            with open(dest, "wb") as f:
                while True:
                    chunk = resp.read(_CHUNK)
                    if not chunk:
                        break
                    f.write(chunk)
    except (urllib.error.URLError, OSError) as e:
        raise FetchError(f"下载失败 {url}: {e}") from e
    logger.info("下载完成: %s -> %s", url, dest)
    return dest


def get_json(
    url: str,
    credential: Credential | None = None,
    *,
    timeout: int = 60,
) -> Any:
    """GET 并解析 JSON 响应"""
    validate_url_scheme(url, context="query")
    req = build_request(url, credential, accept="application/json")
    try:
        with urllib.request.urlopen(req, timeout=timeout) as resp:  # nosec B310
            return json.loads(resp.read().decode("utf-8"))
    except urllib.error.HTTPError as e:
        raise FetchError(f"请求失败 {url}: HTTP {e.code}") from e
    except (urllib.error.URLError, OSError) as e:
        raise FetchError(f"请求失败 {url}: {e}") from e
    except ValueError as e:
        raise FetchError(f"响应不是有效的 JSON {url}: {e}") from e
