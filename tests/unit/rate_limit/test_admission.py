"""アドミッション制御のテスト"""

from unittest.mock import patch

import pytest

from courier.rate_limit.admission import (
    AdmissionController,
    QuotaConfig,
    Tier,
)


class TestQuotaConfig:
    """QuotaConfig のテスト"""

    def test_window_seconds(self):
        """ミリ秒から秒に変換される"""
        assert QuotaConfig(max_requests=1, window_ms=1500).window_seconds == 1.5

    def test_invalid_window(self):
        """ウィンドウ長が0以下の場合はエラー"""
        with pytest.raises(ValueError, match="window_ms"):
            QuotaConfig(max_requests=1, window_ms=0)

    def test_negative_max_requests(self):
        """上限が負の場合はエラー"""
        with pytest.raises(ValueError, match="max_requests"):
            QuotaConfig(max_requests=-1, window_ms=1000)


class TestAdmissionController:
    """AdmissionController のテスト"""

    @pytest.mark.asyncio
    async def test_allows_up_to_max_requests(self, admission):
        """上限までは許可され、超えると拒否される"""
        decisions = [await admission.check("key-a") for _ in range(4)]

        assert [d.allowed for d in decisions] == [True, True, True, False]
        assert decisions[2].remaining == 0
        assert decisions[3].retry_after_ms is not None

    @pytest.mark.asyncio
    async def test_retry_after_is_time_until_reset(self, admission, clock):
        """拒否時の retry_after_ms はリセットまでの残り時間"""
        for _ in range(3):
            await admission.check("key-a")
        clock.advance(0.25)

        decision = await admission.check("key-a")

        assert decision.allowed is False
        assert decision.retry_after_ms == 750

    @pytest.mark.asyncio
    async def test_window_reset_allows_again(self, admission, clock):
        """ウィンドウ経過後は再び許可され、カウントが1に戻る"""
        for _ in range(4):
            await admission.check("key-a")

        clock.advance(1.001)
        decision = await admission.check("key-a")

        assert decision.allowed is True
        assert decision.count == 1

    @pytest.mark.asyncio
    async def test_allowed_decision_has_no_retry_after(self, admission):
        """許可時は retry_after_ms が None"""
        decision = await admission.check("key-a")

        assert decision.allowed is True
        assert decision.retry_after_ms is None
        assert decision.to_dict() == {"allowed": True}

    @pytest.mark.asyncio
    async def test_to_dict_on_deny(self, admission):
        """拒否時の辞書表現に retryAfterMs が含まれる"""
        for _ in range(3):
            await admission.check("key-a")
        decision = await admission.check("key-a")

        assert decision.to_dict() == {
            "allowed": False,
            "retryAfterMs": decision.retry_after_ms,
        }

    @pytest.mark.asyncio
    async def test_lookup_quota_per_identity(self, counter):
        """lookup_quota で解決したクォータが適用される"""
        quotas = {"premium": QuotaConfig(max_requests=5, window_ms=1000)}
        admission = AdmissionController(
            counter=counter,
            lookup_quota=quotas.get,
            default_quota=QuotaConfig(max_requests=1, window_ms=1000),
        )

        premium = [await admission.check("premium") for _ in range(5)]
        other = [await admission.check("other") for _ in range(2)]

        assert all(d.allowed for d in premium)
        assert premium[0].limit == 5
        assert [d.allowed for d in other] == [True, False]
        assert other[0].limit == 1

    @pytest.mark.asyncio
    async def test_anonymous_uses_default_quota(self, counter):
        """IDが無い場合は lookup を呼ばずデフォルトを使用する"""
        calls = []

        def lookup(identity):
            calls.append(identity)
            return QuotaConfig(max_requests=100, window_ms=1000)

        admission = AdmissionController(
            counter=counter,
            lookup_quota=lookup,
            default_quota=QuotaConfig(max_requests=2, window_ms=1000),
        )

        decision = await admission.check(None)

        assert decision.limit == 2
        assert calls == []
        assert counter.peek("anonymous").count == 1

    @pytest.mark.asyncio
    async def test_bulk_tier_uses_prefixed_key(self, admission, counter):
        """一括送信ティアは bulk: プレフィックス付きのキーを使う"""
        await admission.check("key-a", Tier.BULK)

        assert counter.peek("bulk:key-a").count == 1
        assert counter.peek("key-a") is None

    @pytest.mark.asyncio
    async def test_bulk_exhaustion_does_not_block_general(self, admission):
        """一括送信ティアを使い切っても通常ティアは使える"""
        bulk = [await admission.check("key-a", Tier.BULK) for _ in range(3)]
        general = await admission.check("key-a", Tier.GENERAL)

        assert [d.allowed for d in bulk] == [True, True, False]
        assert general.allowed is True

    @pytest.mark.asyncio
    async def test_general_exhaustion_does_not_block_bulk(self, admission):
        """通常ティアを使い切っても一括送信ティアは使える"""
        for _ in range(4):
            await admission.check("key-a", Tier.GENERAL)

        bulk = await admission.check("key-a", Tier.BULK)

        assert bulk.allowed is True
        assert bulk.limit == 2

    @pytest.mark.asyncio
    async def test_tier_accepts_string(self, admission):
        """ティアは文字列でも指定できる"""
        decision = await admission.check("key-a", "bulk")
        assert decision.tier is Tier.BULK

    @pytest.mark.asyncio
    async def test_release_gives_back_slot(self, admission):
        """release で枠が返却される"""
        for _ in range(3):
            await admission.check("key-a")
        await admission.release("key-a")

        decision = await admission.check("key-a")
        assert decision.allowed is True

    @pytest.mark.asyncio
    async def test_reset_clears_both_tiers(self, admission, counter):
        """reset で両ティアのウィンドウが破棄される"""
        await admission.check("key-a", Tier.GENERAL)
        await admission.check("key-a", Tier.BULK)

        await admission.reset("key-a")

        assert counter.peek("key-a") is None
        assert counter.peek("bulk:key-a") is None

    def test_general_tier_skips_exempt_paths(self, admission):
        """通常ティアは除外パスに適用されない"""
        assert admission.applies(Tier.GENERAL, path="/send") is True
        assert admission.applies(Tier.GENERAL, path="/health") is False
        assert admission.applies(Tier.GENERAL, path="/") is False

    def test_bulk_tier_threshold(self, admission):
        """一括送信ティアは宛先数が閾値を超えた場合のみ適用される"""
        assert admission.applies(Tier.BULK, recipient_count=10) is False
        assert admission.applies(Tier.BULK, recipient_count=11) is True

    def test_tiers_for(self, admission):
        """リクエストに適用されるティアの一覧"""
        assert admission.tiers_for("/send", 1) == [Tier.GENERAL]
        assert admission.tiers_for("/send/bulk", 25) == [Tier.GENERAL, Tier.BULK]
        assert admission.tiers_for("/health", 1) == []

    @pytest.mark.asyncio
    async def test_usage_warning_is_reported(self, admission):
        """上限に近づくとモニターが警告ログを出力する"""
        admission.monitor.warning_threshold = 0.6

        with patch("courier.rate_limit.monitor.logger.warning") as mock_warning:
            await admission.check("key-a")
            mock_warning.assert_not_called()

            await admission.check("key-a")
            mock_warning.assert_called_once()
            assert "2/3" in mock_warning.call_args[0][0]
