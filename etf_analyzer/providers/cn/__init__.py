"""Adapters for mainland China quote providers."""
from __future__ import annotations

from .netease import NeteaseProvider
from .sina import SinaProvider
from .tencent import TencentProvider

__all__ = ["TencentProvider", "SinaProvider", "NeteaseProvider"]
