from switchyard_service.core.types import CallerIdentity, ServiceTier
from switchyard_service.protocol.admission.service_tier import ServiceTierSelector

USER = CallerIdentity(user_id="u-1")
ANON = CallerIdentity(network_origin="203.0.113.7")


class TestTierRules:
    def test_authenticated_interactive_gets_priority(self):
        decision = ServiceTierSelector().select_tier(USER, is_user_facing=True)
        assert decision.tier == ServiceTier.PRIORITY

    def test_anonymous_gets_default(self):
        decision = ServiceTierSelector().select_tier(ANON, is_user_facing=True)
        assert decision.tier == ServiceTier.DEFAULT

    def test_background_gets_flex_even_when_authenticated(self):
        decision = ServiceTierSelector().select_tier(USER, is_user_facing=False)
        assert decision.tier == ServiceTier.FLEX

    def test_forced_tier_wins(self):
        selector = ServiceTierSelector(force="default")
        assert selector.select_tier(USER, True).tier == ServiceTier.DEFAULT
        assert selector.select_tier(ANON, False).tier == ServiceTier.DEFAULT
        assert "Forced" in selector.select_tier(USER, True).reason

    def test_deterministic(self):
        selector = ServiceTierSelector()
        assert selector.select_tier(USER, True) == selector.select_tier(USER, True)


class TestRampGuard:
    def test_downgrades_near_ramp_limit(self):
        now = [0.0]
        selector = ServiceTierSelector(ramp_limit=10, ramp_window_sec=60, clock=lambda: now[0])
        tiers = [selector.select_tier(USER, True).tier for _ in range(10)]
        # 90% of 10 is reached on the 9th request
        assert tiers[:8] == [ServiceTier.PRIORITY] * 8
        assert tiers[8:] == [ServiceTier.DEFAULT] * 2

    def test_window_reset_restores_priority(self):
        now = [0.0]
        selector = ServiceTierSelector(ramp_limit=2, ramp_window_sec=60, clock=lambda: now[0])
        selector.select_tier(USER, True)
        assert selector.select_tier(USER, True).tier == ServiceTier.DEFAULT
        now[0] = 61.0
        assert selector.select_tier(USER, True).tier == ServiceTier.PRIORITY
