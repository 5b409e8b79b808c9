"""
core/initialization.py
----------------------
Loads configuration from .env, normalizes symbols and numeric settings, and
wires all runtime components with simple dependency-injection (DI) overrides.
"""

from __future__ import annotations

import logging
import os
from typing import Dict, List, Optional

from dotenv import load_dotenv

from tradebrain.modules.decision_engine import SignalDecisionEngine
from tradebrain.modules.learning_loop import LearningFeedbackLoop
from tradebrain.modules.market_data import RestMarketData
from tradebrain.modules.providers.technical import (
    ChartPatternEvidenceProvider,
    TechnicalEvidenceProvider,
)
from tradebrain.modules.risk_ladder import RiskLadderCalculator, normalize_symbol
from tradebrain.modules.scheduler import DecisionScheduler
from tradebrain.notifiers.hub import NotifierHub
from tradebrain.persistence.sqlite import ResilientStore, SQLitePersistence
from tradebrain.utils.config_manager import ConfigManager
from tradebrain.utils.event_bus import EventBus

_PRECISION_PREFIX = "PRICE_PRECISION_"


def _csv(raw: str) -> List[str]:
    return [item.strip() for item in raw.split(",") if item.strip()]


def load_configuration(env_path: str = "config.env") -> Dict:
    """
    Load settings from an .env-style file and return a flat config dict.
    """
    log = logging.getLogger(__name__)
    load_dotenv(dotenv_path=env_path)

    precision: Dict[str, int] = {}
    for key, val in os.environ.items():
        if key.startswith(_PRECISION_PREFIX) and val.strip():
            precision[normalize_symbol(key[len(_PRECISION_PREFIX):])] = int(val)

    conf: Dict[str, object] = {
        # order preserved = processing order in each cycle
        "SYMBOLS": list(dict.fromkeys(s.upper() for s in _csv(os.getenv("SYMBOLS", "XAUUSD,EURUSD")))),
        "RISK_PERCENT_PER_TRADE": float(os.getenv("RISK_PERCENT_PER_TRADE", "0.02")),
        "MIN_SCORE_GAP": float(os.getenv("MIN_SCORE_GAP", "4.0")),
        "HIGH_RISK_SCORE_GAP": float(os.getenv("HIGH_RISK_SCORE_GAP", "6.0")),
        "TAKE_PROFIT_MULTIPLIERS": [float(m) for m in _csv(os.getenv("TAKE_PROFIT_MULTIPLIERS", "2.0,3.0,4.0"))],
        "DECISION_CYCLE_PERIOD": float(os.getenv("DECISION_CYCLE_PERIOD", "600")),
        "OUTCOME_CYCLE_PERIOD": float(os.getenv("OUTCOME_CYCLE_PERIOD", "30")),
        "LEARNING_CYCLE_PERIOD": float(os.getenv("LEARNING_CYCLE_PERIOD", "300")),
        "TIMER_JITTER": float(os.getenv("TIMER_JITTER", "0.1")),
        "MAX_SIGNALS_RETAINED": int(os.getenv("MAX_SIGNALS_RETAINED", "100")),
        "PROVIDER_TIMEOUT": float(os.getenv("PROVIDER_TIMEOUT", "10")),
        "HIGH_VOLATILITY": float(os.getenv("HIGH_VOLATILITY", "0.04")),
        "MEDIUM_VOLATILITY": float(os.getenv("MEDIUM_VOLATILITY", "0.025")),
        "DB_PATH": os.getenv("DB_PATH", "data/tradebrain.db"),
        "MARKET_API_BASE_URL": os.getenv("MARKET_API_BASE_URL", "https://api.lbank.info"),
        "KLINE_TIMEFRAME": os.getenv("KLINE_TIMEFRAME", "1h"),
        "PRICE_PRECISION": precision,
        "TELEGRAM_TOKEN": os.getenv("TELEGRAM_TOKEN"),
        "TELEGRAM_CHAT_ID": os.getenv("TELEGRAM_CHAT_ID"),
        "LOG_LEVEL": os.getenv("LOG_LEVEL", "INFO"),
        "LOG_FILE": os.getenv("LOG_FILE", "logs/tradebrain.log"),
        "LOG_MAX_MB": int(os.getenv("LOG_MAX_MB", "5")),
        "LOG_BACKUPS": int(os.getenv("LOG_BACKUPS", "5")),
    }

    log.debug("Parsed SYMBOLS: %s", conf["SYMBOLS"])
    log.debug("Price precision overrides: %s", precision)
    return conf


def initialize_components(
    config: Dict,
    overrides: Optional[Dict[str, object]] = None,
    logger: Optional[logging.Logger] = None,
) -> Dict[str, object]:
    """
    Construct and wire together all runtime components (supports DI via overrides).

    Keys you can override:
    {"store", "bus", "market_data", "providers", "engine", "ladder",
     "learning", "notifier_hub", "scheduler"}
    """
    overrides = overrides or {}
    cfg = ConfigManager(config)
    logger = logger or logging.getLogger(__name__)

    # 1) Persistence
    store = overrides.get("store")
    if store is None:
        store = SQLitePersistence(cfg.get_db_path(), max_signals=cfg.get_max_signals())
    store = store if isinstance(store, ResilientStore) else ResilientStore(store)

    # 2) Event bus + notifiers
    bus = overrides.get("bus") or EventBus()
    hub = overrides.get("notifier_hub") or NotifierHub.from_config(config)
    hub.attach(bus)

    # 3) Market data (price + context + candles)
    market_data = overrides.get("market_data") or RestMarketData(
        cfg.get_market_api_url(),
        cfg.get_kline_timeframe(),
        timeout=cfg.get_provider_timeout(),
        logger=logger,
    )

    # 4) Evidence providers
    providers = overrides.get("providers")
    if providers is None:
        providers = [
            TechnicalEvidenceProvider(market_data),
            ChartPatternEvidenceProvider(market_data),
        ]

    # 5) Core services
    medium_vol, high_vol = cfg.get_volatility_thresholds()
    engine = overrides.get("engine") or SignalDecisionEngine(
        min_score_gap=cfg.get_min_score_gap(),
        high_risk_score_gap=cfg.get_high_risk_score_gap(),
        medium_volatility=medium_vol,
        high_volatility=high_vol,
    )
    ladder = overrides.get("ladder") or RiskLadderCalculator(
        risk_percent=cfg.get_risk_percent(),
        multipliers=cfg.get_take_profit_multipliers(),
        precision_overrides=cfg.get_price_precision(),
    )
    learning = overrides.get("learning") or LearningFeedbackLoop(store=store, bus=bus)

    # 6) Scheduler
    scheduler = overrides.get("scheduler") or DecisionScheduler(
        cfg.get_symbols(),
        providers,
        market_data,
        market_data,
        engine,
        ladder,
        learning,
        store=store,
        bus=bus,
        decision_period=cfg.get_decision_period(),
        outcome_period=cfg.get_outcome_period(),
        learning_period=cfg.get_learning_period(),
        jitter=cfg.get_timer_jitter(),
        provider_timeout=cfg.get_provider_timeout(),
        max_signals=cfg.get_max_signals(),
        metrics_sources=[market_data],
        logger=logger,
    )

    logger.info("✅ Store initialized: %s", store.store.__class__.__name__)
    logger.info("✅ Evidence providers: %s", [p.name for p in providers])
    logger.info("✅ Notifier back-ends: %s", [b.__class__.__name__ for b in hub.backends])
    logger.info("✅ DecisionScheduler initialized for %s", cfg.get_symbols())

    return {
        "store": store,
        "bus": bus,
        "notifier_hub": hub,
        "market_data": market_data,
        "providers": providers,
        "engine": engine,
        "ladder": ladder,
        "learning": learning,
        "scheduler": scheduler,
    }
