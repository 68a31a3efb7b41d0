from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict

from ..config import defaults, settings
from ..utils.logger import get_logger

log = get_logger("service.config")

# Threshold names that may be overridden at runtime -> their default value
THRESHOLD_DEFAULTS: Dict[str, Any] = {
    "top_n": defaults.TOP_N,
    "concentration_critical_top1": defaults.CONCENTRATION_CRITICAL_TOP1,
    "concentration_high_top1": defaults.CONCENTRATION_HIGH_TOP1,
    "concentration_high_top3": defaults.CONCENTRATION_HIGH_TOP3,
    "concentration_medium_top1": defaults.CONCENTRATION_MEDIUM_TOP1,
    "concentration_medium_top3": defaults.CONCENTRATION_MEDIUM_TOP3,
    "churn_high": defaults.CHURN_HIGH,
    "churn_medium": defaults.CHURN_MEDIUM,
    "runrate_warn": defaults.RUNRATE_WARN,
    "outlier_z_threshold": defaults.OUTLIER_Z_THRESHOLD,
    "outlier_max": defaults.OUTLIER_MAX,
    "min_volume_share": defaults.MIN_VOLUME_SHARE,
    "min_absolute_volume_mt": defaults.MIN_ABSOLUTE_VOLUME_MT,
    "min_performance_gap": defaults.MIN_PERFORMANCE_GAP,
    "advantage_max": defaults.ADVANTAGE_MAX,
    "kilo_rate_min_share": defaults.KILO_RATE_MIN_SHARE,
    "cum_share_target": defaults.CUM_SHARE_TARGET,
    "max_focus": defaults.MAX_FOCUS,
    "max_list": defaults.MAX_LIST,
    "underperf_vol_pct": defaults.UNDERPERF_VOL_PCT,
    "underperf_yoy_vol": defaults.UNDERPERF_YOY_VOL,
    "growth_vol_pct": defaults.GROWTH_VOL_PCT,
    "growth_yoy_vol": defaults.GROWTH_YOY_VOL,
}

_INT_KEYS = {"top_n", "outlier_max", "advantage_max", "max_focus", "max_list"}


def config_path() -> Path:
    return settings.DATA_DIR / "insights" / "config.json"


# --- Insights Config Management ---
def _read_stored() -> Dict[str, Any]:
    """Overrides saved on disk; an unreadable file counts as no overrides."""
    path = config_path()
    if not path.exists():
        return {}
    try:
        stored = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        log.error(f"Could not read runtime config {path}, using defaults: {e}")
        return {}
    if not isinstance(stored, dict):
        log.error(f"Runtime config {path} is not a JSON object, using defaults")
        return {}
    ignored = sorted(set(stored) - set(THRESHOLD_DEFAULTS))
    if ignored:
        log.warning(f"Ignoring unknown runtime settings in {path}: {ignored}")
    return {k: v for k, v in stored.items() if k in THRESHOLD_DEFAULTS}


def get_runtime_config() -> Dict[str, Any]:
    cfg = dict(THRESHOLD_DEFAULTS)
    cfg.update(_read_stored())
    return cfg


def _validate(payload: Dict[str, Any]) -> Dict[str, Any]:
    unknown = sorted(set(payload) - set(THRESHOLD_DEFAULTS))
    if unknown:
        raise ValueError(f"Unknown insight settings: {unknown}")
    clean: Dict[str, Any] = {}
    for key, value in payload.items():
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError(f"Setting '{key}' must be numeric")
        if value < 0 and not key.startswith("underperf_"):
            raise ValueError(f"Setting '{key}' must not be negative")
        clean[key] = int(value) if key in _INT_KEYS else float(value)
    return clean


def update_runtime_config(payload: Dict[str, Any]) -> Dict[str, Any]:
    changes = _validate(payload)
    path = config_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    stored = _read_stored()
    stored.update(changes)
    path.write_text(json.dumps(stored, indent=2), encoding="utf-8")
    log.info(f"Updated runtime config: {changes}")
    return get_runtime_config()


def reset_runtime_config() -> Dict[str, Any]:
    path = config_path()
    if path.exists():
        path.unlink()
        log.info("Runtime insight settings reset to defaults")
    return get_runtime_config()


# --- Divisions ---
def get_division_info(division: str) -> Dict[str, Any]:
    code = (division or "").strip().upper()
    if code not in defaults.DIVISIONS:
        raise ValueError(f"Unknown division '{division}'")
    return {"division": code, **defaults.DIVISIONS[code]}


def validate_division(division: str) -> str:
    """Upper-cased division code; unknown or not yet active divisions are configuration errors."""
    info = get_division_info(division)
    if info["status"] != "active":
        raise ValueError(f"Division '{info['division']}' is not active (status={info['status']})")
    return info["division"]
