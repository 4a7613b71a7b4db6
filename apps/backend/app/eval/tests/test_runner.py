import json

from app.eval import runner
from app.eval.runner import run_batch, run_scenario, summarise_and_log
from app.eval.scenarios import Scenario, default_scenarios


def test_run_scenario_routes_without_llm(monkeypatch):
    def boom(*args, **kwargs):  # type: ignore[no-untyped-def]
        raise AssertionError("routing eval must not call the LLM")

    monkeypatch.setattr("app.agent.voyage.intent_classifier.call_llm_structured", boom)
    monkeypatch.setattr("app.agent.voyage.reasoning.call_llm_structured", boom)

    scenario = Scenario(
        name="route",
        query="route from Singapore to Rotterdam",
        expected_intent="route_calculation",
        expected_worker="route",
        expected_decision="immediate_action",
    )
    result = run_scenario(scenario)

    assert result.passed, result.feedback
    assert result.intent == "route_calculation"
    assert result.worker == "route"
    assert result.confidence == 90


def test_run_scenario_reports_mismatch():
    scenario = Scenario(
        name="wrong",
        query="what is the weather at port",
        expected_intent="port_weather",
        expected_decision="immediate_action",
    )
    result = run_scenario(scenario)

    assert not result.passed
    assert "request_clarification" in result.feedback


def test_default_scenarios_all_pass():
    results = run_batch(default_scenarios())
    failures = [(r.scenario.name, r.feedback) for r in results if not r.passed]
    assert failures == []


def test_summarise_writes_json_and_exit_code(tmp_path, capsys):
    results = run_batch(default_scenarios()[:2])
    out = tmp_path / "results.json"

    code = summarise_and_log(results, out)

    assert code == 0
    payload = json.loads(out.read_text(encoding="utf-8"))
    assert [p["scenario"]["name"] for p in payload] == ["route_named_ports", "port_weather_locode"]
    assert "Passed 2/2" in capsys.readouterr().err


def test_main_loads_extra_scenarios(tmp_path):
    extra = tmp_path / "extra.json"
    extra.write_text(
        json.dumps(
            [
                {
                    "name": "extra_fail",
                    "query": "cheapest bunker",
                    "expected_decision": "finalize",
                },
                {"name": "incomplete"},
            ]
        ),
        encoding="utf-8",
    )

    assert runner.main(["--extra-scenarios", str(extra)]) == 1
