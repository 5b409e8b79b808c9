from tradebrain.models.errors import ConfigError


def validate_config(config: dict):
    required_keys = [
        "SYMBOLS",
        "RISK_PERCENT_PER_TRADE",
        "MIN_SCORE_GAP",
        "TAKE_PROFIT_MULTIPLIERS",
        "DECISION_CYCLE_PERIOD",
        "OUTCOME_CYCLE_PERIOD",
    ]

    missing = [k for k in required_keys if k not in config or config[k] in (None, "", [])]
    if missing:
        raise ConfigError(f"Missing required configuration keys: {missing}")

    if not isinstance(config["SYMBOLS"], list) or not config["SYMBOLS"]:
        raise TypeError("SYMBOLS must be a non-empty list.")

    risk = float(config["RISK_PERCENT_PER_TRADE"])
    if not 0 < risk <= 0.10:
        raise ConfigError(f"RISK_PERCENT_PER_TRADE must be in (0, 0.10], got {risk}")

    gap = float(config["MIN_SCORE_GAP"])
    if gap < 0:
        raise ConfigError("MIN_SCORE_GAP must be non-negative.")
    high_gap = float(config.get("HIGH_RISK_SCORE_GAP", gap))
    if high_gap < gap:
        raise ConfigError("HIGH_RISK_SCORE_GAP must be >= MIN_SCORE_GAP.")

    multipliers = config["TAKE_PROFIT_MULTIPLIERS"]
    if not isinstance(multipliers, (list, tuple)) or len(multipliers) != 3:
        raise TypeError("TAKE_PROFIT_MULTIPLIERS must hold exactly three values.")
    m1, m2, m3 = (float(m) for m in multipliers)
    if not m1 < m2 < m3:
        raise ConfigError("TAKE_PROFIT_MULTIPLIERS must be strictly increasing.")
    if m1 < 1.5:
        raise ConfigError("First take-profit multiplier must be >= 1.5 (tp1 risk-reward floor).")

    for key in ("DECISION_CYCLE_PERIOD", "OUTCOME_CYCLE_PERIOD", "LEARNING_CYCLE_PERIOD"):
        if key in config and float(config[key]) <= 0:
            raise ConfigError(f"{key} must be positive.")

    jitter = float(config.get("TIMER_JITTER", 0.0))
    if not 0 <= jitter < 0.5:
        raise ConfigError("TIMER_JITTER must be in [0, 0.5).")

    if int(config.get("MAX_SIGNALS_RETAINED", 1)) < 1:
        raise ConfigError("MAX_SIGNALS_RETAINED must be >= 1.")
