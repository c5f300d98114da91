"""
Tests for the statescope explorer models.

This test module verifies the identity rules of actions and observations,
the session status lifecycle and the helpers on DiscoveryResult.
"""

import pytest

from statescope.errors import DiscoveryError, ErrorCode, InvalidStatusTransitionError
from statescope.explorer.models import (
    ActionDescriptor,
    ActionKind,
    Comparison,
    DiscoveredState,
    DiscoveryResult,
    ExplorationSession,
    ExplorationStatus,
    Interaction,
    Observation,
    ViewportContext,
    generate_id,
)


class TestActionDescriptor:
    """Test ActionDescriptor model."""

    def test_identity_is_kind_and_ref(self):
        """Test that identity combines kind and target ref."""
        action = ActionDescriptor(target_ref="#save", kind=ActionKind.BUTTON)
        assert action.identity == "button:#save"

    def test_equality_ignores_label_and_confidence(self):
        """Test that two descriptors of the same target compare equal."""
        a = ActionDescriptor(target_ref="#save", kind=ActionKind.BUTTON, label="Save")
        b = ActionDescriptor(target_ref="#save", kind=ActionKind.BUTTON, confidence=0.4)
        assert a == b
        assert len({a, b}) == 1

    def test_different_kind_is_different_action(self):
        a = ActionDescriptor(target_ref="#x", kind=ActionKind.BUTTON)
        b = ActionDescriptor(target_ref="#x", kind=ActionKind.LINK)
        assert a != b

    def test_confidence_bounds(self):
        """Test that confidence outside [0, 1] is rejected."""
        with pytest.raises(ValueError):
            ActionDescriptor(target_ref="#x", confidence=1.5)

    def test_defaults(self):
        action = ActionDescriptor(target_ref="#x")
        assert action.kind == ActionKind.CUSTOM
        assert action.visible
        assert action.enabled
        assert action.attributes == {}


class TestObservation:
    """Test Observation model."""

    def test_combined_fingerprint_is_stable(self, make_observation):
        """Test that equal fingerprints give equal combined fingerprints."""
        a = make_observation("home")
        b = make_observation("home", title="Different title")
        assert a.combined_fingerprint == b.combined_fingerprint
        assert len(a.combined_fingerprint) == 64

    def test_combined_fingerprint_depends_on_both_parts(self, make_observation):
        base = make_observation("home")
        visual = make_observation("home", visual_fingerprint="visual:other")
        structural = make_observation("home", structural_fingerprint="struct:other")
        assert base.combined_fingerprint != visual.combined_fingerprint
        assert base.combined_fingerprint != structural.combined_fingerprint

    def test_combined_fingerprint_separator_is_unambiguous(self):
        """Fingerprints containing the separator character stay distinct."""
        a = Observation(visual_fingerprint="v:x", structural_fingerprint="s")
        b = Observation(visual_fingerprint="v", structural_fingerprint="x:s")
        assert a.combined_fingerprint != b.combined_fingerprint

    def test_action_count_prefers_actions(self, make_observation):
        """Test that action_count uses the action list, then the reported size."""
        assert make_observation("home", action_space_size=9).action_count == 1
        assert make_observation("home", actions=[], action_space_size=9).action_count == 9
        assert Observation().action_count == 0

    def test_has_visual_data(self):
        assert Observation(visual_fingerprint="abc").has_visual_data
        assert not Observation().has_visual_data

    def test_observation_is_frozen(self, make_observation):
        observation = make_observation("home")
        with pytest.raises(ValueError):
            observation.title = "Changed"


class TestViewportAndComparison:
    """Test ViewportContext and Comparison helpers."""

    def test_same_scroll(self):
        a = ViewportContext(width=800, height=600, scroll_y=10)
        b = ViewportContext(width=1024, height=768, scroll_y=10)
        c = ViewportContext(width=800, height=600, scroll_y=20)
        assert a.same_scroll(b)
        assert not a.same_scroll(c)

    def test_overall_similarity_is_mean(self):
        comparison = Comparison(visual_similarity=0.4, structural_similarity=0.8, identical=False)
        assert comparison.overall_similarity == pytest.approx(0.6)


class TestDiscoveredState:
    """Test DiscoveredState model."""

    def test_label_prefers_title(self, make_observation):
        observation = make_observation("home")
        state = DiscoveredState(observation=observation, fingerprint=observation.combined_fingerprint)
        assert state.label == "Home"
        assert state.id.startswith("state_")

    def test_label_falls_back_to_location_and_id(self):
        state = DiscoveredState(observation=Observation(location="https://app.test/x"), fingerprint="f")
        assert state.label == "https://app.test/x"
        bare = DiscoveredState(observation=Observation(), fingerprint="g")
        assert bare.label == bare.id

    def test_equality_by_id(self, make_observation):
        observation = make_observation("home")
        a = DiscoveredState(id="state_1", observation=observation, fingerprint="f")
        b = DiscoveredState(id="state_1", observation=observation, fingerprint="f", visit_count=5)
        assert a == b
        assert hash(a) == hash(b)


class TestExplorationSession:
    """Test the session status lifecycle."""

    def test_forward_transitions(self):
        session = ExplorationSession()
        assert session.status == ExplorationStatus.INITIALIZING
        session.transition_to(ExplorationStatus.EXPLORING)
        session.transition_to(ExplorationStatus.COMPLETED)
        assert session.status == ExplorationStatus.COMPLETED
        assert session.end_time is not None

    @pytest.mark.parametrize(
        "terminal",
        [ExplorationStatus.COMPLETED, ExplorationStatus.FAILED, ExplorationStatus.TIMEOUT],
    )
    def test_terminal_status_is_absorbing(self, terminal):
        """Test that no status can follow a terminal one."""
        session = ExplorationSession()
        session.transition_to(ExplorationStatus.EXPLORING)
        session.transition_to(terminal)
        with pytest.raises(InvalidStatusTransitionError):
            session.transition_to(ExplorationStatus.EXPLORING)

    def test_same_status_is_noop(self):
        session = ExplorationSession()
        session.transition_to(ExplorationStatus.INITIALIZING)
        assert session.status == ExplorationStatus.INITIALIZING
        assert session.end_time is None

    def test_elapsed_seconds_non_negative(self):
        assert ExplorationSession().elapsed_seconds >= 0

    def test_is_terminal_flags(self):
        assert not ExplorationStatus.INITIALIZING.is_terminal
        assert not ExplorationStatus.EXPLORING.is_terminal
        assert ExplorationStatus.TIMEOUT.is_terminal


class TestDiscoveryResult:
    """Test DiscoveryResult helpers."""

    def _result(self, make_observation, **overrides):
        home = make_observation("home")
        state = DiscoveredState(id="state_home", observation=home, fingerprint=home.combined_fingerprint)
        values = {
            "session_id": "session_1",
            "status": ExplorationStatus.COMPLETED,
            "states": [state],
            "interactions": [
                Interaction(state_id="state_home", action=ActionDescriptor(target_ref="#a")),
                Interaction(
                    state_id="state_home",
                    action=ActionDescriptor(target_ref="#b"),
                    successful=False,
                    error="boom",
                ),
            ],
            "coverage": 0.5,
        }
        values.update(overrides)
        return DiscoveryResult(**values)

    def test_lookups(self, make_observation):
        result = self._result(make_observation)
        assert result.get_state("state_home") is result.states[0]
        assert result.get_state("missing") is None
        assert result.get_state_by_location("https://app.test/home").id == "state_home"
        assert [i.action.target_ref for i in result.failed_interactions()] == ["#b"]

    def test_succeeded_and_raise_for_status(self, make_observation):
        result = self._result(make_observation)
        assert result.succeeded
        result.raise_for_status()

    def test_failed_result_raises(self, make_observation):
        result = self._result(
            make_observation,
            status=ExplorationStatus.FAILED,
            error="Could not observe the initial state",
            error_code="E101",
        )
        with pytest.raises(DiscoveryError) as exc_info:
            result.raise_for_status()
        assert "initial state" in exc_info.value.message
        assert exc_info.value.error_code == ErrorCode.SESSION_FAILED

    def test_timeout_result_raises_timeout_code(self, make_observation):
        result = self._result(make_observation, status=ExplorationStatus.TIMEOUT)
        assert not result.succeeded
        with pytest.raises(DiscoveryError) as exc_info:
            result.raise_for_status()
        assert exc_info.value.error_code == ErrorCode.SESSION_TIMEOUT

    def test_to_dict_is_json_compatible(self, make_observation):
        data = self._result(make_observation).to_dict()
        assert data["status"] == "completed"
        assert data["states"][0]["id"] == "state_home"
        assert isinstance(data["started_at"], str)


def test_generate_id_prefix():
    assert generate_id("transition").startswith("transition_")
    assert generate_id("x") != generate_id("x")
