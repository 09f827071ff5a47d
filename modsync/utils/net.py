"""网络工具: URL 协议校验、下载地址拼装、限长读取"""

from __future__ import annotations

from typing import IO
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse

from modsync.core.exceptions import ValidationError

_ALLOWED_SCHEMES = frozenset(("http", "https"))


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


def build_download_url(base_url: str, ref: str, username: str, token: str) -> str:
    """拼装带认证参数的下载地址: {base_url}{ref}?username=...&token=...

    凭据经过 URL 编码；ref 自带的查询参数会被保留。
    """
    parsed = urlparse(f"{base_url.rstrip('/')}{ref}")
    query = dict(parse_qsl(parsed.query))
    query["username"] = username
    query["token"] = token
    return urlunparse(parsed._replace(query=urlencode(query)))


def read_capped(resp: IO[bytes], limit: int) -> bytes:
    """读取响应体，超过 limit 字节时抛 ValueError"""
    body = resp.read(limit + 1)
    if len(body) > limit:
        raise ValueError(f"响应体超过上限 {limit} 字节")
    return body
