import unittest

from langchain_core.messages import AIMessage, HumanMessage

from app.agent.voyage.state import (
    ArtifactKind,
    TurnKind,
    build_initial_state,
    has_artifact,
    has_vessel_identifiers,
    keep_first,
    merge_artifacts,
    merge_by_key,
    turn_kind,
    user_query,
)


class TestStateReducers(unittest.TestCase):
    def test_merge_artifacts_ignores_absent_values(self) -> None:
        merged = merge_artifacts({"route": {"nm": 1}}, {"route": None, "weather": [1]})

        self.assertEqual(merged, {"route": {"nm": 1}, "weather": [1]})

    def test_merge_artifacts_replaces_whole_values(self) -> None:
        merged = merge_artifacts({"route": {"nm": 1, "eta": "x"}}, {"route": {"nm": 2}})

        self.assertEqual(merged, {"route": {"nm": 2}})

    def test_keep_first_preserves_original_intent(self) -> None:
        self.assertEqual(keep_first(None, "bunker_planning"), "bunker_planning")
        self.assertEqual(keep_first("bunker_planning", "route_calculation"), "bunker_planning")

    def test_merge_by_key(self) -> None:
        self.assertEqual(merge_by_key({"route": "success"}, {"bunker": "failed"}), {"route": "success", "bunker": "failed"})
        self.assertEqual(merge_by_key(None, None), {})


class TestStateHelpers(unittest.TestCase):
    def test_build_initial_state_starts_clean(self) -> None:
        state = build_initial_state("route from Singapore to Rotterdam", "cid-1", metadata={"source": "api"})

        self.assertEqual(state["correlation_id"], "cid-1")
        self.assertEqual(state["artifacts"], {})
        self.assertEqual(state["reasoning_trace"], [])
        self.assertEqual(state["recovery_attempts"], 0)
        self.assertIsNone(state["original_intent"])
        self.assertFalse(state["needs_clarification"])
        self.assertEqual(state["metadata"], {"source": "api"})
        self.assertEqual(user_query(state), "route from Singapore to Rotterdam")

    def test_empty_artifacts_do_not_count(self) -> None:
        state = build_initial_state("q", "cid")
        state["artifacts"] = {"route": {}, "bunker_ports": [], "weather": [{"t": 1}]}

        self.assertFalse(has_artifact(state, ArtifactKind.ROUTE))
        self.assertFalse(has_artifact(state, "bunker_ports"))
        self.assertTrue(has_artifact(state, ArtifactKind.WEATHER))

    def test_vessel_identifiers(self) -> None:
        state = build_initial_state("q", "cid")
        self.assertFalse(has_vessel_identifiers(state))

        state["artifacts"] = {"vessel_identifiers": {"names": [], "imos": ["9321483"]}}
        self.assertTrue(has_vessel_identifiers(state))

    def test_turn_kind(self) -> None:
        self.assertIs(turn_kind(HumanMessage(content="hi")), TurnKind.HUMAN)
        self.assertIs(turn_kind(AIMessage(content="hi")), TurnKind.AI)


if __name__ == "__main__":
    unittest.main()
