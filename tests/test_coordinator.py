"""Tests for shared overlay coordination."""

import random
import threading

import pytest

from flashguard.suppression import coordinator as coordinator_module
from flashguard.suppression.coordinator import (
    SuppressionCoordinator,
    get_coordinator,
    init_coordinator,
    shutdown_coordinator,
)
from flashguard.suppression.overlay import (
    OverlayAppearance,
    OverlayStateView,
    overlay_background,
)


def test_trigger_and_release_are_idempotent():
    overlay = OverlayStateView()
    coordinator = SuppressionCoordinator(overlay)

    coordinator.trigger("a")
    coordinator.trigger("a")
    assert overlay.show_calls == 1

    coordinator.release("a")
    coordinator.release("a")
    coordinator.release("never-triggered")
    assert overlay.hide_calls == 1
    assert coordinator.visible is False


def test_overlay_stays_until_last_source_releases():
    overlay = OverlayStateView()
    coordinator = SuppressionCoordinator(overlay)

    coordinator.trigger("a")
    coordinator.trigger("b")
    coordinator.release("a")
    assert overlay.state()["visible"] is True
    assert coordinator.active_sources == frozenset({"b"})

    coordinator.release("b")
    assert overlay.state()["visible"] is False
    assert (overlay.show_calls, overlay.hide_calls) == (1, 1)


def test_visibility_matches_active_set_for_random_sequences():
    rng = random.Random(1234)
    overlay = OverlayStateView()
    coordinator = SuppressionCoordinator(overlay)
    expected: set[str] = set()

    for _ in range(500):
        source = rng.choice("abcd")
        if rng.random() < 0.5:
            coordinator.trigger(source)
            expected.add(source)
        else:
            coordinator.release(source)
            expected.discard(source)

        visible, active = coordinator.snapshot()
        assert active == expected
        assert visible is bool(expected)
        assert overlay.state()["visible"] is bool(expected)


def test_concurrent_sources_keep_visibility_consistent():
    overlay = OverlayStateView()
    coordinator = SuppressionCoordinator(overlay)

    def churn(source_id: str) -> None:
        for _ in range(300):
            coordinator.trigger(source_id)
            coordinator.release(source_id)

    threads = [threading.Thread(target=churn, args=(f"s{i}",)) for i in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert coordinator.visible is False
    assert overlay.state()["visible"] is False
    assert overlay.show_calls == overlay.hide_calls


def test_update_appearance_keeps_active_sources():
    overlay = OverlayStateView()
    coordinator = SuppressionCoordinator(overlay)
    coordinator.trigger("a")

    coordinator.update_appearance(
        OverlayAppearance(color="#ff0000", opacity=1.5, show_warning_text=False)
    )

    state = overlay.state()
    assert state["background"] == "rgba(255, 0, 0, 1.0)"
    assert state["opacity"] == 1.0
    assert state["label_text"] == ""
    assert coordinator.active_sources == frozenset({"a"})
    assert overlay.show_calls == 1


def test_overlay_background_falls_back_for_invalid_color():
    assert overlay_background("#003264", 0.5) == "rgba(0, 50, 100, 0.5)"
    assert overlay_background("003264", -1) == "rgba(0, 50, 100, 0.0)"
    assert overlay_background("not-a-color", 0.2) == "rgba(0, 50, 100, 0.95)"


class TestProcessCoordinator:
    """Tests for the process-wide coordinator lifecycle."""

    @pytest.fixture(autouse=True)
    def _clean(self):
        shutdown_coordinator()
        yield
        shutdown_coordinator()

    def test_get_before_init_raises(self):
        with pytest.raises(RuntimeError):
            get_coordinator()

    def test_init_returns_existing_instance(self):
        first = init_coordinator(OverlayStateView())
        second = init_coordinator(OverlayStateView())

        assert first is second
        assert get_coordinator() is first

    def test_init_applies_initial_appearance(self):
        overlay = OverlayStateView()
        init_coordinator(overlay, OverlayAppearance(warning_text="Careful"))

        assert overlay.state()["label_text"] == "Careful"

    def test_shutdown_hides_overlay(self):
        overlay = OverlayStateView()
        coordinator = init_coordinator(overlay)
        coordinator.trigger("a")

        shutdown_coordinator()

        assert overlay.state()["visible"] is False
        assert coordinator_module._COORDINATOR is None
