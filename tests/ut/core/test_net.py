"""网络工具单元测试"""

from __future__ import annotations

import pytest

from pkgrun.core.exceptions import ValidationError
from pkgrun.core.models import Credential
from pkgrun.utils.net import build_request, validate_url_scheme


class TestValidateUrl:
    def test_http_allowed(self) -> None:
        validate_url_scheme("https://pkgs.example.com/a.zip")
        validate_url_scheme("http://pkgs.example.com/a.zip")

    def test_file_rejected(self) -> None:
        with pytest.raises(ValidationError, match="不允许的 URL 协议 'file' \\(download\\)"):
            validate_url_scheme("file:///etc/passwd", context="download")


class TestBuildRequest:
    def test_default_headers(self) -> None:
        req = build_request("https://pkgs.example.com", accept="application/json")
        assert req.get_header("User-agent") == "pkgrun"
        assert req.get_header("Accept") == "application/json"
        assert req.get_header("Authorization") is None

    def test_token_credential(self) -> None:
        req = build_request("https://pkgs.example.com", Credential(token="abc"))
        assert req.get_header("Authorization") == "Bearer abc"

    def test_basic_credential(self) -> None:
        req = build_request("https://pkgs.example.com", Credential(username="u", password="p"))
        assert req.get_header("Authorization") == "Basic dTpw"
