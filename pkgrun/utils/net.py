"""网络工具：URL 安全校验 + 请求构造"""

from __future__ import annotations

import urllib.request
from typing import TYPE_CHECKING
from urllib.parse import urlparse

from pkgrun.core.exceptions import ValidationError

if TYPE_CHECKING:
    from pkgrun.core.models import Credential

_ALLOWED_SCHEMES = frozenset(("http", "https"))

USER_AGENT = "pkgrun"


def validate_url_scheme(url: str, *, context: str = "") -> None:
    """校验 URL 仅使用 http/https，防止 file:// 等非预期协议访问

    Raises:
        ValidationError: URL scheme 不在白名单内
    """
    parsed = urlparse(url)
    if parsed.scheme not in _ALLOWED_SCHEMES:
        label = f" ({context})" if context else ""
        raise ValidationError(
            f"不允许的 URL 协议 '{parsed.scheme}'{label}，"
            f"仅支持 http/https: {url}"
        )


def build_request(
    url: str,
    credential: Credential | None = None,
    *,
    accept: str = "",
) -> urllib.request.Request:
    """构造带认证头的请求对象"""
    req = urllib.request.Request(url)
    req.add_header("User-Agent", USER_AGENT)
    if accept:
        req.add_header("Accept", accept)
    if credential is not None:
        for key, value in credential.headers().items():
            req.add_header(key, value)
    return req
