import os
import sys

import pytest

# 确保项目根目录在 sys.path
ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)


@pytest.fixture(autouse=True)
def isolated_cache(tmp_path, monkeypatch):
    """每个测试使用独立的文件缓存目录"""
    from stockgenie.layers import cache as cache_module

    layer = cache_module.CacheLayer(str(tmp_path / "cache"))
    monkeypatch.setattr(cache_module, "_cache", layer)
    return layer
