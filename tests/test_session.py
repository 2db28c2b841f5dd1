"""Tests for capcom.session: bounded history and context helpers."""

import pytest

from capcom.session import SessionState


def _fill(session: SessionState, count: int, start: int = 0) -> None:
    for i in range(start, start + count):
        session.add_exchange(f"message {i}", f"reply {i}")


class TestHistoryBounding:
    @pytest.mark.parametrize("capacity,appended", [(1, 5), (3, 3), (10, 25), (15, 16)])
    def test_never_exceeds_capacity(self, capacity, appended) -> None:
        session = SessionState(capacity=capacity)
        _fill(session, appended)
        assert session.exchange_count == min(capacity, appended)

    def test_oldest_evicted_first(self) -> None:
        session = SessionState(capacity=3)
        _fill(session, 5)
        assert [ex.user_text for ex in session.history] == ["message 2", "message 3", "message 4"]

    def test_invalid_capacity(self) -> None:
        with pytest.raises(ValueError):
            SessionState(capacity=0)


class TestExchanges:
    def test_exchange_records_location(self, session: SessionState) -> None:
        session.add_exchange("hi", "hello")
        session.set_routing_context("ISS", "wants examples")
        ex = session.add_exchange("what altitude?", "420 km", command_executed=None)
        assert session.history[0].location == "Hub"
        assert ex.location == "ISS"
        assert ex.timestamp is not None

    def test_last_user_message(self, session: SessionState) -> None:
        assert session.last_user_message == ""
        _fill(session, 2)
        assert session.last_user_message == "message 1"


class TestRoutingContext:
    def test_visited_excludes_hub(self, session: SessionState) -> None:
        session.set_routing_context("ISS", "examples")
        session.set_routing_context("Hub", "Returning from ISS")
        session.set_routing_context("GPS", "constellations")
        assert session.visited == {"ISS", "GPS"}
        assert session.has_visited("ISS")
        assert not session.has_visited("Hub")

    def test_return_context(self, session: SessionState) -> None:
        assert session.return_context() == ""
        session.set_routing_context("Hubble", "telescopes")
        assert session.return_context() == ""
        session.set_routing_context("Hub", "Returning from Hubble")
        assert "Hubble" in session.return_context()

    def test_clear(self, session: SessionState) -> None:
        _fill(session, 3)
        session.set_routing_context("ISS", "examples")
        session.begin_routing("GPS", "constellations")
        session.clear()
        assert session.exchange_count == 0
        assert session.current_location == "Hub"
        assert session.routing_rationale == ""
        assert session.visited == set()
        assert session.pending_route is None

    def test_pending_route_moves_nothing(self, session: SessionState) -> None:
        session.begin_routing("ISS", "crewed stations")
        assert session.current_location == "Hub"
        assert session.routing_rationale == ""
        assert session.visited == set()

    def test_arrive_applies_pending_route(self, session: SessionState) -> None:
        session.begin_routing("ISS", "crewed stations")
        assert session.arrive("ISS")
        assert session.current_location == "ISS"
        assert session.previous_location == "Hub"
        assert session.routing_rationale == "crewed stations"
        assert session.visited == {"ISS"}
        assert session.pending_route is None

    def test_arrive_elsewhere_is_ignored(self, session: SessionState) -> None:
        session.begin_routing("ISS", "crewed stations")
        assert not session.arrive("GPS")
        assert session.current_location == "Hub"
        assert not session.arrive("Hub")

    def test_abandoned_route_stays_put(self, session: SessionState) -> None:
        session.begin_routing("Voyager", "deep space")
        session.abandon_routing()
        assert session.pending_route is None
        assert not session.arrive("Voyager")
        assert session.current_location == "Hub"
        assert session.visited == set()


class TestContextText:
    def test_context_summary_marks_commands(self, session: SessionState) -> None:
        session.add_exchange("make an ISS orbit", "done", command_executed="create_circular_orbit")
        session.add_exchange("thanks", "anytime")
        summary = session.context_summary(3)
        assert summary.startswith("Recent conversation:")
        assert "(executed create_circular_orbit)" in summary
        assert "- User: thanks" in summary

    def test_context_summary_empty(self, session: SessionState) -> None:
        assert session.context_summary() == ""

    def test_formatted_history_window(self, session: SessionState) -> None:
        _fill(session, 8)
        text = session.formatted_history(2)
        assert "message 6" in text and "message 7" in text
        assert "message 5" not in text
        assert session.formatted_history(0) == ""

    def test_context_for_specialist_truncates(self, session: SessionState) -> None:
        session.add_exchange("x" * 250, "short")
        session.set_routing_context("ISS", "needs observation altitudes")
        text = session.context_for_specialist()
        assert "User was routed here because: needs observation altitudes" in text
        assert "x" * 100 + "..." in text
        assert "x" * 101 not in text

    def test_context_for_specialist_uses_last_three(self, session: SessionState) -> None:
        _fill(session, 5)
        text = session.context_for_specialist()
        assert "message 1" not in text
        assert "message 2" in text and "message 4" in text

    def test_context_for_mission_control(self, session: SessionState) -> None:
        assert "not visited" in session.context_for_mission_control()
        session.set_routing_context("Voyager", "deep space")
        session.set_routing_context("GPS", "coverage")
        assert session.context_for_mission_control() == "Mission spaces visited this session: GPS, Voyager"
