import pydantic
import pytest

from indigo_core.config.settings import PydanticSettings


def test_yaml_file_is_loaded(monkeypatch, tmp_path):
    cfg = tmp_path / "indigo.yaml"
    cfg.write_text("max_iterations: 7\nturn_conflict_policy: reject\n", encoding="utf-8")
    monkeypatch.setenv("INDIGO_CONFIG_FILE", str(cfg))
    monkeypatch.delenv("MAX_ITERATIONS", raising=False)
    s = PydanticSettings()
    assert s.max_iterations == 7
    assert s.turn_conflict_policy == "reject"


def test_environment_beats_yaml(monkeypatch, tmp_path):
    cfg = tmp_path / "indigo.yaml"
    cfg.write_text("max_iterations: 7\n", encoding="utf-8")
    monkeypatch.setenv("INDIGO_CONFIG_FILE", str(cfg))
    monkeypatch.setenv("MAX_ITERATIONS", "3")
    assert PydanticSettings().max_iterations == 3


def test_iteration_cap_is_bounded():
    with pytest.raises(pydantic.ValidationError):
        PydanticSettings(max_iterations=50)


def test_unknown_risk_override_rejected():
    with pytest.raises(pydantic.ValidationError):
        PydanticSettings(tool_risk_overrides={"delete_issue": "harmless"})
    s = PydanticSettings(tool_risk_overrides={"log_work": "read_only"})
    assert s.tool_risk_overrides == {"log_work": "read_only"}
