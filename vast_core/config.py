"""VAST configuration.

Parameter groups:

- jwmc (belief revision): alpha (credence blend weight, [0,1]), beta
  (confidence decay floor, [0,1]), gamma (justification-similarity weight,
  [0,1]), moral_core_bonus.
- eeucc (decision): lambda (cascade decay, strictly inside (0,1)); an
  optional base utility function replacing the default outcome heuristic.
- gauges: thresholds excellent > good > fair, trend window size, alert
  cooldown in milliseconds.
- loop: max_ticks and tick_delay_ms for the headless runner.
- logging: enabled/verbose flags and an optional golden log directory.

`validate_config` never raises; it returns human-readable problems so a UI
can show all of them at once.
"""

from __future__ import annotations

import json
import math
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

from .errors import ValidationError, vast_error, VAST_E_CONFIG
from .types import ActionContext

UtilityFn = Callable[[str, str, ActionContext], float]

CORE_MORAL_PRINCIPLES = (
    "preserve_life",
    "respect_dignity",
    "fairness",
    "non_maleficence",
)

GAUGE_WEIGHTS: Dict[str, float] = {
    "calibration": 0.25,
    "normative_alignment": 0.35,
    "coherence": 0.20,
    "reasoning": 0.20,
}


@dataclass
class RevisionParams:
    alpha: float = 0.7
    beta: float = 0.8
    gamma: float = 0.5
    moral_core_bonus: float = 0.1

    def validate(self) -> List[str]:
        errors: List[str] = []
        for name, symbol, v in (("alpha", "α", self.alpha), ("beta", "β", self.beta), ("gamma", "γ", self.gamma)):
            if not _is_number(v) or not (0.0 <= v <= 1.0):
                errors.append(f"JWMC {symbol} ({name}) must be in [0,1], got {v}")
        if not _is_number(self.moral_core_bonus) or self.moral_core_bonus < 0:
            errors.append(f"JWMC moral_core_bonus must be >= 0, got {self.moral_core_bonus}")
        return errors


@dataclass
class DecisionParams:
    lambda_: float = 0.6
    base_utility_fn: Optional[UtilityFn] = None

    def validate(self) -> List[str]:
        if not _is_number(self.lambda_) or not (0.0 < self.lambda_ < 1.0):
            return [f"EEUCC λ (lambda) must be in (0,1), got {self.lambda_}"]
        return []


@dataclass
class GaugeThresholds:
    excellent: float = 0.75
    good: float = 0.60
    fair: float = 0.40

    def validate(self) -> List[str]:
        errors: List[str] = []
        for name in ("excellent", "good", "fair"):
            v = getattr(self, name)
            if not _is_number(v) or not (0.0 <= v <= 1.0):
                errors.append(f"Gauge threshold {name} must be in [0,1], got {v}")
        if not errors and not (self.excellent > self.good > self.fair):
            errors.append("Gauge thresholds must be: excellent > good > fair")
        return errors


@dataclass
class GaugeConfig:
    thresholds: GaugeThresholds = field(default_factory=GaugeThresholds)
    window_size: int = 10
    alert_cooldown_ms: float = 5000

    def validate(self) -> List[str]:
        errors = self.thresholds.validate()
        if not isinstance(self.window_size, int) or self.window_size < 1:
            errors.append(f"Gauge window_size must be an integer >= 1, got {self.window_size}")
        if not _is_number(self.alert_cooldown_ms) or self.alert_cooldown_ms < 0:
            errors.append(f"Gauge alert_cooldown_ms must be >= 0, got {self.alert_cooldown_ms}")
        return errors


@dataclass
class LoopConfig:
    max_ticks: Optional[int] = 100
    tick_delay_ms: float = 0

    def validate(self) -> List[str]:
        errors: List[str] = []
        if self.max_ticks is not None and (not isinstance(self.max_ticks, int) or self.max_ticks < 1):
            errors.append(f"Loop max_ticks must be an integer >= 1, got {self.max_ticks}")
        if not _is_number(self.tick_delay_ms) or self.tick_delay_ms < 0:
            errors.append(f"Loop tick_delay_ms must be >= 0, got {self.tick_delay_ms}")
        return errors


@dataclass
class LoggingConfig:
    enabled: bool = True
    verbose: bool = False
    golden_logs_path: Optional[str] = "__golden__/logs"


@dataclass
class VASTConfig:
    jwmc: RevisionParams = field(default_factory=RevisionParams)
    eeucc: DecisionParams = field(default_factory=DecisionParams)
    gauges: GaugeConfig = field(default_factory=GaugeConfig)
    loop: LoopConfig = field(default_factory=LoopConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "jwmc": {
                "alpha": self.jwmc.alpha,
                "beta": self.jwmc.beta,
                "gamma": self.jwmc.gamma,
                "moral_core_bonus": self.jwmc.moral_core_bonus,
            },
            "eeucc": {"lambda": self.eeucc.lambda_},
            "gauges": {
                "thresholds": {
                    "excellent": self.gauges.thresholds.excellent,
                    "good": self.gauges.thresholds.good,
                    "fair": self.gauges.thresholds.fair,
                },
                "window_size": self.gauges.window_size,
                "alert_cooldown_ms": self.gauges.alert_cooldown_ms,
            },
            "loop": {
                "max_ticks": self.loop.max_ticks,
                "tick_delay_ms": self.loop.tick_delay_ms,
            },
            "logging": {
                "enabled": self.logging.enabled,
                "verbose": self.logging.verbose,
                "golden_logs_path": self.logging.golden_logs_path,
            },
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "VASTConfig":
        return create_config(data)


DEFAULT_CONFIG = VASTConfig()


def _is_number(v: Any) -> bool:
    return isinstance(v, (int, float)) and not isinstance(v, bool) and math.isfinite(v)


def _shape_problems(overrides: Any) -> List[str]:
    """Structural problems that stop an override dict from being merged at all."""
    if overrides is None:
        return []
    if not isinstance(overrides, Mapping):
        return ["config must be an object"]
    problems: List[str] = []
    for section in ("jwmc", "eeucc", "gauges", "loop", "logging"):
        value = overrides.get(section)
        if value is not None and not isinstance(value, Mapping):
            problems.append(f"{section} must be an object")
    gauges = overrides.get("gauges")
    if isinstance(gauges, Mapping):
        thresholds = gauges.get("thresholds")
        if thresholds is not None and not isinstance(thresholds, Mapping):
            problems.append("gauges.thresholds must be an object")
    return problems


def create_config(overrides: Optional[Mapping[str, Any]] = None) -> VASTConfig:
    """Merge a nested override dict (same shape as `VASTConfig.to_dict()`) over the defaults.

    Unknown keys are ignored. Values are not validated here; call
    `validate_config` on the result. A section that is not an object raises
    a `VAST_E_CONFIG` validation error.
    """
    problems = _shape_problems(overrides)
    if problems:
        raise vast_error(ValidationError, VAST_E_CONFIG, "; ".join(problems), problems=problems)
    o = dict(overrides or {})
    jwmc = dict(o.get("jwmc") or {})
    eeucc = dict(o.get("eeucc") or {})
    gauges = dict(o.get("gauges") or {})
    thresholds = dict(gauges.get("thresholds") or {})
    loop = dict(o.get("loop") or {})
    logging_cfg = dict(o.get("logging") or {})

    d_j = DEFAULT_CONFIG.jwmc
    d_g = DEFAULT_CONFIG.gauges
    d_l = DEFAULT_CONFIG.loop
    d_log = DEFAULT_CONFIG.logging

    return VASTConfig(
        jwmc=RevisionParams(
            alpha=jwmc.get("alpha", d_j.alpha),
            beta=jwmc.get("beta", d_j.beta),
            gamma=jwmc.get("gamma", d_j.gamma),
            moral_core_bonus=jwmc.get("moral_core_bonus", d_j.moral_core_bonus),
        ),
        eeucc=DecisionParams(
            lambda_=eeucc.get("lambda", eeucc.get("lambda_", DEFAULT_CONFIG.eeucc.lambda_)),
            base_utility_fn=eeucc.get("base_utility_fn"),
        ),
        gauges=GaugeConfig(
            thresholds=GaugeThresholds(
                excellent=thresholds.get("excellent", d_g.thresholds.excellent),
                good=thresholds.get("good", d_g.thresholds.good),
                fair=thresholds.get("fair", d_g.thresholds.fair),
            ),
            window_size=gauges.get("window_size", d_g.window_size),
            alert_cooldown_ms=gauges.get("alert_cooldown_ms", d_g.alert_cooldown_ms),
        ),
        loop=LoopConfig(
            max_ticks=loop.get("max_ticks", d_l.max_ticks),
            tick_delay_ms=loop.get("tick_delay_ms", d_l.tick_delay_ms),
        ),
        logging=LoggingConfig(
            enabled=bool(logging_cfg.get("enabled", d_log.enabled)),
            verbose=bool(logging_cfg.get("verbose", d_log.verbose)),
            golden_logs_path=logging_cfg.get("golden_logs_path", d_log.golden_logs_path),
        ),
    )


def validate_config(config: Union[VASTConfig, Mapping[str, Any]]) -> List[str]:
    """Return a list of human-readable configuration problems (empty when valid)."""
    if not isinstance(config, VASTConfig):
        problems = _shape_problems(config)
        if problems:
            return problems
        config = create_config(config)
    errors: List[str] = []
    errors.extend(config.jwmc.validate())
    errors.extend(config.eeucc.validate())
    errors.extend(config.gauges.validate())
    errors.extend(config.loop.validate())
    return errors


def load_config(path: Optional[Union[str, Path]]) -> VASTConfig:
    """Load configuration from a JSON file. A missing path yields the defaults."""
    if path is None:
        return create_config()
    p = Path(path)
    if not p.exists():
        return create_config()
    try:
        with p.open("r", encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise vast_error(
            ValidationError,
            VAST_E_CONFIG,
            f"CONFIG_ERROR: Invalid JSON in config file '{p}': {e}",
            path=str(p),
        ) from e
    if not isinstance(data, dict):
        raise vast_error(ValidationError, VAST_E_CONFIG, f"CONFIG_ERROR: config file '{p}' must contain a JSON object")
    return create_config(data)


# env var -> (section, key, parser)
_ENV_OVERRIDES = {
    "VAST_ALPHA": ("jwmc", "alpha", float),
    "VAST_BETA": ("jwmc", "beta", float),
    "VAST_GAMMA": ("jwmc", "gamma", float),
    "VAST_LAMBDA": ("eeucc", "lambda_", float),
    "VAST_WINDOW_SIZE": ("gauges", "window_size", int),
    "VAST_ALERT_COOLDOWN_MS": ("gauges", "alert_cooldown_ms", float),
    "VAST_MAX_TICKS": ("loop", "max_ticks", int),
}


def apply_env_overrides(config: VASTConfig, environ: Optional[Mapping[str, str]] = None) -> VASTConfig:
    """Apply VAST_* environment overrides in place and return the config."""
    env = os.environ if environ is None else environ
    for name, (section, key, parse) in _ENV_OVERRIDES.items():
        raw = (env.get(name, "") or "").strip()
        if not raw:
            continue
        try:
            value = parse(raw)
        except ValueError as e:
            raise vast_error(
                ValidationError,
                VAST_E_CONFIG,
                f"{name} must be a {parse.__name__}, got {raw!r}",
                env=name,
            ) from e
        setattr(getattr(config, section), key, value)
    return config
