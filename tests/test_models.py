"""Tests for capcom.models."""

from capcom.models import CommandCall, CommandResult, Environment, MISSIONS, TurnOutcome


class TestEnvironment:
    def test_parse_is_case_insensitive(self) -> None:
        assert Environment.parse("iss") is Environment.ISS
        assert Environment.parse(" Voyager ") is Environment.VOYAGER
        assert Environment.parse("hub") is Environment.HUB

    def test_parse_unknown(self) -> None:
        assert Environment.parse("Mir") is None

    def test_missions_exclude_hub(self) -> None:
        assert Environment.HUB not in MISSIONS
        assert len(MISSIONS) == 4


class TestRecords:
    def test_no_action_call(self) -> None:
        call = CommandCall.no_action()
        assert call.intent == "none"
        assert call.command_id is None
        assert call.arguments == {}

    def test_failure_result(self) -> None:
        result = CommandResult.failure("clear_orbit", "boom")
        assert not result.succeeded
        assert result.error_message == "boom"
        assert not result.requires_transition
        assert result.transition_target is None

    def test_outcome_serialises_environment_by_value(self) -> None:
        result = CommandResult(
            command_id="route_to_mission",
            succeeded=True,
            requires_transition=True,
            transition_target=Environment.GPS,
        )
        outcome = TurnOutcome(status="completed", user_text="go", result=result)
        assert outcome.model_dump(mode="json")["result"]["transition_target"] == "GPS"
