from typing import Any, Dict, List, Tuple


class ConfigManager:
    """Typed read access over the flat configuration dict."""

    def __init__(self, config: Dict[str, Any]):
        self.config = config

    def get(self, key: str, default: Any = None) -> Any:
        return self.config.get(key, default)

    def get_symbols(self) -> List[str]:
        return list(self.config.get("symbols") or self.config.get("SYMBOLS") or [])

    def get_risk_percent(self) -> float:
        return float(self.config.get("RISK_PERCENT_PER_TRADE", 0.02))

    def get_min_score_gap(self) -> float:
        return float(self.config.get("MIN_SCORE_GAP", 4.0))

    def get_high_risk_score_gap(self) -> float:
        return float(self.config.get("HIGH_RISK_SCORE_GAP", 6.0))

    def get_take_profit_multipliers(self) -> Tuple[float, float, float]:
        raw = self.config.get("TAKE_PROFIT_MULTIPLIERS") or (2.0, 3.0, 4.0)
        return tuple(float(m) for m in raw)

    def get_decision_period(self) -> float:
        return float(self.config.get("DECISION_CYCLE_PERIOD", 600))

    def get_outcome_period(self) -> float:
        return float(self.config.get("OUTCOME_CYCLE_PERIOD", 30))

    def get_learning_period(self) -> float:
        return float(self.config.get("LEARNING_CYCLE_PERIOD", 300))

    def get_timer_jitter(self) -> float:
        return float(self.config.get("TIMER_JITTER", 0.1))

    def get_max_signals(self) -> int:
        return int(self.config.get("MAX_SIGNALS_RETAINED", 100))

    def get_provider_timeout(self) -> float:
        return float(self.config.get("PROVIDER_TIMEOUT", 10))

    def get_volatility_thresholds(self) -> Tuple[float, float]:
        """Return ``(medium, high)`` volatility cut-offs."""
        return (
            float(self.config.get("MEDIUM_VOLATILITY", 0.025)),
            float(self.config.get("HIGH_VOLATILITY", 0.04)),
        )

    def get_db_path(self) -> str:
        return self.config.get("DB_PATH") or "data/tradebrain.db"

    def get_market_api_url(self) -> str:
        return self.config.get("MARKET_API_BASE_URL") or "https://api.lbank.info"

    def get_kline_timeframe(self) -> str:
        return self.config.get("KLINE_TIMEFRAME") or "1h"

    def get_price_precision(self) -> Dict[str, int]:
        return dict(self.config.get("PRICE_PRECISION") or {})
