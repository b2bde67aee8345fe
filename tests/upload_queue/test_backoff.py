"""
Unit tests for exponential backoff with equal jitter.

Tests verify:
- Delay doubles with retry count
- Equal jitter keeps the delay within [calculated / 2, calculated]
- Delay never exceeds configured cap
- Zero base disables backoff
"""

import pytest


class TestCalculateDelay:
    """Tests for calculate_delay function."""

    @pytest.mark.parametrize("retry_count,upper", [
        (0, 5.0),
        (1, 10.0),
        (2, 20.0),
        (3, 40.0),
        (4, 80.0),
    ])
    def test_delay_within_equal_jitter_window(self, retry_count, upper):
        """Retry n with base=5 lands in [5 * 2^n / 2, 5 * 2^n]."""
        from upload_queue.backoff import calculate_delay

        delay = calculate_delay(retry_count=retry_count, base=5.0, cap=80.0, jitter_seed=42)
        assert upper / 2 <= delay <= upper

    def test_retry_five_capped_at_cap_value(self):
        """Retry 5 with base=5, cap=80 stays in [40, 80]."""
        from upload_queue.backoff import calculate_delay

        # Without cap, base * 2^5 = 160
        delay = calculate_delay(retry_count=5, base=5.0, cap=80.0, jitter_seed=42)
        assert 40.0 <= delay <= 80.0

    def test_high_retry_count_respects_cap(self):
        """Very high retry count neither overflows nor exceeds the cap."""
        from upload_queue.backoff import calculate_delay

        delay = calculate_delay(retry_count=10_000, base=5.0, cap=80.0, jitter_seed=42)
        assert 40.0 <= delay <= 80.0

    def test_minimum_wait_grows_with_retries(self):
        """Unlike full jitter, later retries never come back sooner than base/2."""
        from upload_queue.backoff import calculate_delay

        for seed in range(20):
            assert calculate_delay(0, 5.0, 300.0, jitter_seed=seed) >= 2.5
            assert calculate_delay(3, 5.0, 300.0, jitter_seed=seed) >= 20.0

    def test_seeded_random_is_deterministic(self):
        """Same seed should produce same delay."""
        from upload_queue.backoff import calculate_delay

        delay1 = calculate_delay(retry_count=2, base=5.0, cap=80.0, jitter_seed=42)
        delay2 = calculate_delay(retry_count=2, base=5.0, cap=80.0, jitter_seed=42)
        assert delay1 == delay2

    def test_different_seeds_produce_different_delays(self):
        from upload_queue.backoff import calculate_delay

        delays = {calculate_delay(3, 5.0, 80.0, jitter_seed=seed) for seed in range(10)}
        assert len(delays) > 1

    @pytest.mark.parametrize("base,cap", [(0.0, 300.0), (5.0, 0.0), (-1.0, 10.0)])
    def test_disabled_backoff_returns_zero(self, base, cap):
        from upload_queue.backoff import calculate_delay

        assert calculate_delay(3, base, cap) == 0.0

    def test_negative_retry_count_treated_as_first_retry(self):
        from upload_queue.backoff import calculate_delay

        delay = calculate_delay(-3, 5.0, 80.0, jitter_seed=1)
        assert 2.5 <= delay <= 5.0
