from pathlib import Path
from types import SimpleNamespace

from boqcoef.config import load_config
from boqcoef.matching import DEFAULT_TOP_N, MATCH_THRESHOLD


def test_defaults_without_environment(tmp_path, monkeypatch) -> None:
    monkeypatch.chdir(tmp_path)
    cfg = load_config({})
    assert cfg.match_threshold == MATCH_THRESHOLD
    assert cfg.top_n == DEFAULT_TOP_N
    assert cfg.suggestion_limit == DEFAULT_TOP_N
    assert cfg.units_yaml is None
    assert cfg.solver_time_limit_seconds is None
    assert cfg.strict_forecasts is False
    assert cfg.output_dir == (tmp_path / "outputs").resolve()


def test_environment_values(tmp_path) -> None:
    env = {
        "BOQCOEF_MATCH_THRESHOLD": "0,75",
        "BOQCOEF_TOP_N": "3",
        "BOQCOEF_SUGGESTIONS": "8",
        "BOQCOEF_SOLVER_TIME_LIMIT": "2.5",
        "BOQCOEF_STRICT_FORECASTS": "yes",
        "BOQCOEF_OUTPUT_DIR": str(tmp_path / "out"),
        "BOQCOEF_UNITS_YAML": str(tmp_path / "units.yaml"),
    }
    cfg = load_config(env)
    assert cfg.match_threshold == 0.75
    assert cfg.top_n == 3
    assert cfg.suggestion_limit == 8
    assert cfg.solver_time_limit_seconds == 2.5
    assert cfg.strict_forecasts is True
    assert cfg.output_dir == (tmp_path / "out").resolve()
    assert cfg.units_yaml == (tmp_path / "units.yaml").resolve()


def test_cli_overrides_environment(tmp_path) -> None:
    env = {"BOQCOEF_MATCH_THRESHOLD": "0.7", "BOQCOEF_SOLVER_TIME_LIMIT": "10"}
    args = SimpleNamespace(
        output_dir=str(tmp_path / "cli-out"),
        match_threshold=0.9,
        time_limit=0,
        strict_forecasts=True,
        verbose=True,
    )
    cfg = load_config(env, args)
    assert cfg.match_threshold == 0.9
    assert cfg.solver_time_limit_seconds is None
    assert cfg.strict_forecasts is True
    assert cfg.verbose is True
    assert cfg.output_dir == Path(tmp_path / "cli-out").resolve()


def test_out_of_range_values_are_clamped() -> None:
    cfg = load_config({"BOQCOEF_MATCH_THRESHOLD": "4", "BOQCOEF_TOP_N": "-2", "BOQCOEF_SUGGESTIONS": "junk"})
    assert cfg.match_threshold == 1.0
    assert cfg.top_n == 1
    assert cfg.suggestion_limit == DEFAULT_TOP_N


def test_units_yaml_drives_normalizer(tmp_path) -> None:
    path = tmp_path / "units.yaml"
    path.write_text('aliases:\n  - canonical: "м3"\n    variants: ["кубик"]\n', encoding="utf-8")
    cfg = load_config({"BOQCOEF_UNITS_YAML": str(path)})
    assert cfg.unit_normalizer().normalize("кубик") == "м3"
