"""Rewrite Google Drive share links into direct-download URLs."""

from __future__ import annotations

import re
from urllib.parse import urlparse

DRIVE_HOSTS = ("drive.google.com", "docs.google.com")
DOWNLOAD_TEMPLATE = "https://drive.google.com/uc?id={file_id}&export=download"

_ID_PATTERNS = (
    re.compile(r"/file/d/([a-zA-Z0-9_-]+)"),
    re.compile(r"/document/d/([a-zA-Z0-9_-]+)"),
    re.compile(r"/spreadsheets/d/([a-zA-Z0-9_-]+)"),
    re.compile(r"/presentation/d/([a-zA-Z0-9_-]+)"),
    re.compile(r"[?&]id=([a-zA-Z0-9_-]+)"),
)


def is_drive_url(url: object) -> bool:
    if not isinstance(url, str) or not url:
        return False
    try:
        host = urlparse(url).hostname or ""
    except ValueError:
        return False
    return any(host == candidate or host.endswith("." + candidate) for candidate in DRIVE_HOSTS)


def extract_file_id(url: str) -> str | None:
    for pattern in _ID_PATTERNS:
        match = pattern.search(url)
        if match:
            return match.group(1)
    return None


def to_download_url(url: str) -> str:
    """Return a direct-download URL for Drive links; other URLs pass through."""

    if not is_drive_url(url):
        return url
    file_id = extract_file_id(url)
    if not file_id:
        return url
    return DOWNLOAD_TEMPLATE.format(file_id=file_id)


__all__ = ["extract_file_id", "is_drive_url", "to_download_url"]
