import json

import pytest
from click.testing import CliRunner

from autoflow.cli import main
from autoflow.logger import setup_global_logger

SPEC = {
    "name": "Lead summary",
    "trigger": {"kind": "manual"},
    "actions": [{"kind": "openai", "prompt": "Summarize"}, {"kind": "slack", "channel": "#leads"}],
    "requiredServices": ["openai", "slack"],
}


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def spec_file(tmp_path):
    def write(spec):
        path = tmp_path / "spec.json"
        path.write_text(json.dumps(spec))
        return str(path)

    return write


def test_compile_prints_engine_document(runner, spec_file):
    result = runner.invoke(
        main, ["compile", spec_file(SPEC), "-c", "openai=cred-1", "-c", "slack=cred-2"]
    )
    assert result.exit_code == 0
    document = json.loads(result.stdout)
    assert document["active"] is False
    assert [n["name"] for n in document["nodes"]] == ["Manual Trigger", "OpenAI GPT", "Slack"]
    assert document["nodes"][2]["credentials"]["slackApi"]["id"] == "cred-2"


def test_compile_output_stays_clean_with_logging_enabled(runner, spec_file):
    setup_global_logger("INFO")
    spec = {**SPEC, "actions": [*SPEC["actions"], {"kind": "discord"}]}

    result = runner.invoke(main, ["compile", spec_file(spec), "-c", "openai=cred-1"])

    assert result.exit_code == 0
    document = json.loads(result.stdout)
    assert len(document["nodes"]) == 3
    assert "Compiled workflow" not in result.stdout
    assert "discord" in result.stderr


def test_compile_strict_fails_on_unsupported_action(runner, spec_file):
    spec = {**SPEC, "actions": [{"kind": "discord"}], "requiredServices": []}
    result = runner.invoke(main, ["compile", "--strict", spec_file(spec)])
    assert result.exit_code == 1


def test_compile_rejects_bad_credential_option(runner, spec_file):
    result = runner.invoke(main, ["compile", spec_file(SPEC), "-c", "openai"])
    assert result.exit_code == 2


def test_compile_invalid_json(runner, tmp_path):
    path = tmp_path / "broken.json"
    path.write_text("{")
    assert runner.invoke(main, ["compile", str(path)]).exit_code == 1


def test_compile_invalid_spec(runner, spec_file):
    assert runner.invoke(main, ["compile", spec_file({"actions": []})]).exit_code == 1


def test_services_lists_registry(runner):
    result = runner.invoke(main, ["services"])
    assert result.exit_code == 0
    assert "typeform" in result.output


def test_requirements_unknown_service(runner):
    assert runner.invoke(main, ["requirements", "dropbox"]).exit_code == 1
