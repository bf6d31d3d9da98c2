"""テスト用フィクスチャ."""

from .fakes import FakeClock, FakeTransport

__all__ = ["FakeClock", "FakeTransport"]
