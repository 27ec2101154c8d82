"""Tests for bounded, paced fan-out in infrastructure/throttled_mapper.py."""

import threading
import time
from unittest.mock import MagicMock

from infrastructure.throttled_mapper import (
    ThrottleProfile,
    throttled_map,
    throttled_map_with_profile,
)


class TestThrottledMap:
    def test_throttled_map_should_skip_failed_and_none_results(self):
        # Arrange
        def operation(key: str):
            if key == "C":
                raise RuntimeError("upstream down")
            if key == "E":
                return None
            return key.lower()

        # Act
        results = throttled_map(
            ["A", "B", "C", "D", "E"], operation, max_concurrency=2, delay=0
        )

        # Assert
        assert results == {"A": "a", "B": "b", "D": "d"}

    def test_throttled_map_should_never_exceed_max_concurrency(self):
        # Arrange
        lock = threading.Lock()
        state = {"current": 0, "peak": 0}

        def operation(key: str):
            with lock:
                state["current"] += 1
                state["peak"] = max(state["peak"], state["current"])
            time.sleep(0.02)
            with lock:
                state["current"] -= 1
            return key

        # Act
        results = throttled_map(
            [f"S{i}" for i in range(8)], operation, max_concurrency=2, delay=0
        )

        # Assert
        assert len(results) == 8
        assert state["peak"] <= 2

    def test_throttled_map_should_pause_before_each_replacement_launch(self):
        sleep = MagicMock()

        throttled_map(
            ["A", "B", "C", "D", "E"],
            lambda k: k,
            max_concurrency=2,
            delay=0.5,
            sleep=sleep,
        )

        # two initial launches are immediate; three replacements each wait
        assert sleep.call_count == 3
        sleep.assert_called_with(0.5)

    def test_throttled_map_should_run_duplicate_keys_once(self):
        calls: list[str] = []
        lock = threading.Lock()

        def operation(key: str):
            with lock:
                calls.append(key)
            return key

        results = throttled_map(["A", "B", "A", "B"], operation, delay=0)

        assert sorted(calls) == ["A", "B"]
        assert set(results) == {"A", "B"}

    def test_throttled_map_should_return_empty_for_no_keys(self):
        operation = MagicMock()

        assert throttled_map([], operation) == {}
        operation.assert_not_called()

    def test_throttled_map_with_profile_should_use_profile_settings(self):
        profile = ThrottleProfile(max_concurrency=1, delay=0)

        results = throttled_map_with_profile(["A", "B"], lambda k: k * 2, profile)

        assert results == {"A": "AA", "B": "BB"}
