import os

import pytest

from tradebrain.core.initialization import load_configuration
from tradebrain.models.errors import ConfigError
from tradebrain.modules.risk_ladder import RiskLadderCalculator, price_precision
from tradebrain.utils.config_manager import ConfigManager
from tradebrain.utils.config_validator import validate_config

# ------------------------- Fixtures ------------------------- #


@pytest.fixture
def clean_env(monkeypatch):
    """Isolate os.environ so load_dotenv writes do not leak between tests."""
    monkeypatch.setattr(os, "environ", {"PATH": "/usr/bin"})


@pytest.fixture
def valid_config():
    return {
        "SYMBOLS": ["XAUUSD", "EURUSD"],
        "RISK_PERCENT_PER_TRADE": 0.02,
        "MIN_SCORE_GAP": 4.0,
        "HIGH_RISK_SCORE_GAP": 6.0,
        "TAKE_PROFIT_MULTIPLIERS": [2.0, 3.0, 4.0],
        "DECISION_CYCLE_PERIOD": 600,
        "OUTCOME_CYCLE_PERIOD": 30,
        "LEARNING_CYCLE_PERIOD": 300,
        "TIMER_JITTER": 0.1,
        "MAX_SIGNALS_RETAINED": 100,
    }


# ------------------------- Tests ------------------------- #


def test_load_configuration_from_env_file(tmp_path, clean_env):
    env = tmp_path / "config.env"
    env.write_text(
        "SYMBOLS=xauusd, eurusd ,XAUUSD,gbpusd\n"
        "RISK_PERCENT_PER_TRADE=0.01\n"
        "TAKE_PROFIT_MULTIPLIERS=1.5,2.5,3.5\n"
        "PRICE_PRECISION_EURUSD=5\n"
        "TELEGRAM_TOKEN=abc\n"
    )
    conf = load_configuration(str(env))

    assert conf["SYMBOLS"] == ["XAUUSD", "EURUSD", "GBPUSD"]
    assert conf["RISK_PERCENT_PER_TRADE"] == 0.01
    assert conf["TAKE_PROFIT_MULTIPLIERS"] == [1.5, 2.5, 3.5]
    assert conf["PRICE_PRECISION"] == {"EURUSD": 5}
    assert conf["TELEGRAM_TOKEN"] == "abc"
    assert conf["MIN_SCORE_GAP"] == 4.0
    assert conf["DECISION_CYCLE_PERIOD"] == 600


def test_precision_override_for_separated_symbol_reaches_ladder(tmp_path, clean_env, make_snapshot):
    env = tmp_path / "config.env"
    env.write_text("SYMBOLS=btc_usdt\nPRICE_PRECISION_BTC_USDT=1\nPRICE_PRECISION_eth_usdt=3\n")
    conf = load_configuration(str(env))

    overrides = ConfigManager(conf).get_price_precision()
    assert overrides == {"BTCUSDT": 1, "ETHUSDT": 3}
    assert price_precision("BTC_USDT", overrides) == 1
    assert price_precision("ETH/USDT", overrides) == 3

    calc = RiskLadderCalculator(risk_percent=0.02, precision_overrides=overrides)
    ladder = calc.compute_ladder("BUY", 65000.1234, make_snapshot(symbol="BTC_USDT", price=65000.1234))
    assert ladder.entry_price == 65000.1
    assert ladder.stop_loss == 63700.1
    assert ladder.tp1 == 67600.1


def test_load_configuration_defaults(tmp_path, clean_env):
    conf = load_configuration(str(tmp_path / "missing.env"))
    assert conf["SYMBOLS"] == ["XAUUSD", "EURUSD"]
    assert conf["TAKE_PROFIT_MULTIPLIERS"] == [2.0, 3.0, 4.0]
    assert conf["DB_PATH"] == "data/tradebrain.db"
    validate_config(conf)


def test_valid_config_passes(valid_config):
    validate_config(valid_config)


@pytest.mark.parametrize("key,value", [
    ("RISK_PERCENT_PER_TRADE", 0.0),
    ("RISK_PERCENT_PER_TRADE", 0.2),
    ("MIN_SCORE_GAP", -1),
    ("HIGH_RISK_SCORE_GAP", 2.0),
    ("TAKE_PROFIT_MULTIPLIERS", [2.0, 2.0, 4.0]),
    ("TAKE_PROFIT_MULTIPLIERS", [1.0, 3.0, 4.0]),
    ("DECISION_CYCLE_PERIOD", 0),
    ("OUTCOME_CYCLE_PERIOD", -5),
    ("TIMER_JITTER", 0.5),
    ("MAX_SIGNALS_RETAINED", 0),
])
def test_out_of_range_values_are_rejected(valid_config, key, value):
    valid_config[key] = value
    with pytest.raises(ValueError):
        validate_config(valid_config)


def test_missing_keys_are_reported(valid_config):
    del valid_config["MIN_SCORE_GAP"]
    with pytest.raises(ConfigError, match="MIN_SCORE_GAP"):
        validate_config(valid_config)


@pytest.mark.parametrize("key,value", [
    ("SYMBOLS", "XAUUSD"),
    ("TAKE_PROFIT_MULTIPLIERS", [2.0, 3.0]),
])
def test_wrong_shapes_are_type_errors(valid_config, key, value):
    valid_config[key] = value
    with pytest.raises(TypeError):
        validate_config(valid_config)


def test_config_manager_getters(valid_config):
    valid_config["PRICE_PRECISION"] = {"EURUSD": 5}
    cfg = ConfigManager(valid_config)

    assert cfg.get_symbols() == ["XAUUSD", "EURUSD"]
    assert cfg.get_take_profit_multipliers() == (2.0, 3.0, 4.0)
    assert cfg.get_volatility_thresholds() == (0.025, 0.04)
    assert cfg.get_price_precision() == {"EURUSD": 5}
    assert cfg.get_provider_timeout() == 10.0
    assert cfg.get_kline_timeframe() == "1h"
