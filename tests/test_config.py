import json

import pytest

from vast_core.config import (
    VASTConfig,
    apply_env_overrides,
    create_config,
    load_config,
    validate_config,
)
from vast_core.errors import ValidationError, VAST_E_CONFIG


def test_defaults_are_valid():
    config = create_config()
    assert validate_config(config) == []
    assert config.jwmc.alpha == 0.7
    assert config.eeucc.lambda_ == 0.6
    assert config.gauges.thresholds.good == 0.60


def test_overrides_merge_over_defaults():
    config = create_config({"jwmc": {"alpha": 0.3}, "eeucc": {"lambda": 0.5}, "gauges": {"thresholds": {"fair": 0.2}}})
    assert config.jwmc.alpha == 0.3
    assert config.jwmc.beta == 0.8
    assert config.eeucc.lambda_ == 0.5
    assert config.gauges.thresholds.fair == 0.2
    assert config.gauges.thresholds.excellent == 0.75


@pytest.mark.parametrize(
    "overrides,fragment",
    [
        ({"jwmc": {"alpha": 1.5}}, "(alpha)"),
        ({"jwmc": {"gamma": "high"}}, "(gamma)"),
        ({"eeucc": {"lambda": 1.0}}, "(lambda)"),
        ({"eeucc": {"lambda": 0}}, "(lambda)"),
        ({"gauges": {"thresholds": {"good": 0.8}}}, "excellent > good > fair"),
        ({"gauges": {"window_size": 0}}, "window_size"),
        ({"loop": {"max_ticks": 0}}, "max_ticks"),
        ({"jwmc": 1}, "jwmc must be an object"),
        ({"gauges": "bad"}, "gauges must be an object"),
        ({"gauges": {"thresholds": [0.9]}}, "gauges.thresholds must be an object"),
        ([], "config must be an object"),
    ],
)
def test_validation_reports_problems(overrides, fragment):
    errors = validate_config(overrides)
    assert any(fragment in e for e in errors), errors


def test_validation_collects_every_problem():
    errors = validate_config({"jwmc": {"alpha": 2, "beta": -1}, "eeucc": {"lambda": 3}})
    assert len(errors) == 3


def test_malformed_sections_are_reported_not_raised():
    assert validate_config({"jwmc": 1, "gauges": "bad"}) == ["jwmc must be an object", "gauges must be an object"]
    with pytest.raises(ValidationError) as exc:
        create_config({"loop": "fast"})
    assert exc.value.code == VAST_E_CONFIG


def test_dict_round_trip():
    config = create_config({"jwmc": {"gamma": 0.4}, "loop": {"max_ticks": None}})
    assert VASTConfig.from_dict(config.to_dict()) == config


def test_load_missing_file_gives_defaults(tmp_path):
    assert load_config(tmp_path / "absent.json") == create_config()
    assert load_config(None) == create_config()


def test_load_file(tmp_path):
    path = tmp_path / "vast.json"
    path.write_text(json.dumps({"eeucc": {"lambda": 0.45}}), encoding="utf-8")
    assert load_config(path).eeucc.lambda_ == 0.45


def test_load_rejects_bad_json(tmp_path):
    path = tmp_path / "vast.json"
    path.write_text("{not json", encoding="utf-8")
    with pytest.raises(ValidationError) as ei:
        load_config(path)
    assert ei.value.code == VAST_E_CONFIG
    assert "CONFIG_ERROR" in str(ei.value)

    path.write_text("[1, 2]", encoding="utf-8")
    with pytest.raises(ValidationError):
        load_config(path)


def test_env_overrides():
    config = apply_env_overrides(
        create_config(),
        {"VAST_LAMBDA": "0.4", "VAST_MAX_TICKS": "5", "VAST_ALPHA": " ", "UNRELATED": "x"},
    )
    assert config.eeucc.lambda_ == 0.4
    assert config.loop.max_ticks == 5
    assert config.jwmc.alpha == 0.7


def test_env_override_parse_error():
    with pytest.raises(ValidationError) as ei:
        apply_env_overrides(create_config(), {"VAST_WINDOW_SIZE": "ten"})
    assert ei.value.code == VAST_E_CONFIG
