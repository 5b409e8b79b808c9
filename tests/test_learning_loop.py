import logging
from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

from tradebrain.models.trade_record import PriceObservation
from tradebrain.modules.learning_loop import LearningFeedbackLoop, evaluate_outcome
from tradebrain.persistence.sqlite import SQLitePersistence

# ------------------------- Fixtures ------------------------- #


@pytest.fixture
def loop():
    return LearningFeedbackLoop()


def observe(loop, price, symbol="EURUSD"):
    return loop.observe(PriceObservation(symbol, price, datetime(2026, 1, 1, tzinfo=timezone.utc)))


def seed(loop, make_signal, wins, losses, factors=("rsi:oversold",), symbol="EURUSD"):
    """Resolve ``wins`` winning then ``losses`` losing BUY trades."""
    for _ in range(wins):
        loop.record_signal(make_signal(symbol=symbol, factors=factors))
    observe(loop, 1.0760, symbol)
    for _ in range(losses):
        loop.record_signal(make_signal(symbol=symbol, factors=factors))
    observe(loop, 1.0440, symbol)


# ------------------------- Transitions ------------------------- #


def test_price_through_tp1_resolves_partial(loop, make_signal):
    signal = make_signal(entry=1.0550, tp1=1.0650)
    loop.record_signal(signal, {"volatility": 0.035, "trend": "BULLISH"})

    resolved = observe(loop, 1.0660)

    assert len(resolved) == 1
    record = resolved[0]
    assert record.status == "PARTIAL"
    assert record.pnl_percentage == pytest.approx((1.0660 - 1.0550) / 1.0550 * 100)
    assert record.exit_price == 1.0660
    assert record.lessons_learned
    assert "works well under high volatility" in record.lessons_learned
    assert "trend alignment supported the trade" in record.lessons_learned


def test_price_through_tp3_is_win_and_stop_is_loss(loop, make_signal):
    win = loop.record_signal(make_signal())
    observe(loop, 1.0760)
    loss = loop.record_signal(make_signal())
    observe(loop, 1.0440)

    assert win.status == "WIN"
    assert loss.status == "LOSS"
    assert loss.pnl_percentage < 0
    assert loop.snapshot("EURUSD").win_count == 1
    assert loop.snapshot("EURUSD").loss_count == 1


def test_price_between_levels_stays_pending(loop, make_signal):
    record = loop.record_signal(make_signal())
    assert observe(loop, 1.0600) == []
    assert record.status == "PENDING"
    assert loop.pending("EURUSD") == [record]


def test_sell_transitions_are_mirrored(loop, make_signal):
    sell = make_signal(direction="SELL", entry=1.1000, stop=1.1100, tp1=1.0800, tp2=1.0700, tp3=1.0600)
    record = loop.record_signal(sell)
    observe(loop, 1.0790)
    assert record.status == "PARTIAL"
    assert record.pnl_percentage > 0


def test_loss_lessons_reflect_market_conditions(loop, make_signal):
    loop.record_signal(
        make_signal(confidence=0.65),
        {"news_impact": "HIGH", "risk_level": "HIGH", "trend": "SIDEWAYS"},
    )
    record = observe(loop, 1.0440)[0]
    assert "avoid during high-impact news" in record.lessons_learned
    assert "high risk conditions require stronger conviction" in record.lessons_learned
    assert any("low confidence" in lesson for lesson in record.lessons_learned)


def test_terminal_record_is_never_re_evaluated(loop, make_signal):
    record = loop.record_signal(make_signal())
    observe(loop, 1.0760)
    before = record.to_dict()

    assert observe(loop, 1.0440) == []
    assert record.to_dict() == before
    assert evaluate_outcome(record, 1.0440) is None
    assert loop.snapshot("EURUSD").loss_count == 0


def test_observation_for_other_symbol_is_ignored(loop, make_signal):
    record = loop.record_signal(make_signal())
    observe(loop, 1.0440, symbol="XAUUSD")
    assert record.status == "PENDING"


def test_record_signal_is_idempotent(loop, make_signal):
    signal = make_signal()
    first = loop.record_signal(signal)
    assert loop.record_signal(signal) is first
    assert len(loop.history()) == 1


def test_outcome_is_published_on_bus(make_signal):
    bus = MagicMock()
    loop = LearningFeedbackLoop(bus=bus)
    loop.record_signal(make_signal())
    record = observe(loop, 1.0760)[0]
    bus.publish.assert_called_once_with("trade_outcome", record)


# ------------------------- Learning ------------------------- #


def test_persistently_losing_symbol_is_avoided(loop, make_signal):
    seed(loop, make_signal, wins=2, losses=8)

    adjusted = loop.apply_learning("EURUSD", "BUY", 0.8, ["rsi:oversold"])

    assert adjusted.avoid_flag is True
    assert adjusted.recommendations


def test_nine_resolved_trades_are_not_enough_to_avoid(loop, make_signal):
    seed(loop, make_signal, wins=1, losses=8)
    assert loop.apply_learning("EURUSD", "BUY", 0.8).avoid_flag is False


def test_aggregation_boosts_winning_factor(loop, make_signal):
    seed(loop, make_signal, wins=3, losses=0, factors=("macd:bullish_cross",))
    rules = loop.run_aggregation()

    assert [(r.condition_tag, r.action, r.times_applied) for r in rules] == [
        ("macd:bullish_cross", "BOOST", 3)
    ]
    assert loop.snapshot("EURUSD").running_confidence == pytest.approx(0.95)

    adjusted = loop.apply_learning("EURUSD", "BUY", 0.7, ["macd:bullish_cross"])
    # symbol factor capped at +10%, one BOOST rule
    assert adjusted.value == pytest.approx(0.7 * 1.1 * 1.05)
    assert adjusted.avoid_flag is False


def test_aggregation_penalizes_losing_factor(loop, make_signal):
    seed(loop, make_signal, wins=0, losses=3, factors=("rsi:overbought",))
    rules = loop.run_aggregation()

    assert rules[0].action == "PENALIZE"
    adjusted = loop.apply_learning("EURUSD", "BUY", 0.7, ["rsi:overbought"])
    assert adjusted.value == pytest.approx(0.7 * 0.9 * 0.9)


def test_rules_need_three_observations(loop, make_signal):
    seed(loop, make_signal, wins=2, losses=0, factors=("pattern:hammer",))
    assert loop.run_aggregation() == ()


def test_decayed_factor_rule_is_retired_but_symbol_avoided(loop, make_signal):
    seed(loop, make_signal, wins=1, losses=10, factors=("ema:bearish_stack",))
    rules = loop.run_aggregation()

    tags = {r.condition_tag: r.action for r in rules}
    assert "ema:bearish_stack" not in tags
    assert tags["symbol:EURUSD"] == "AVOID"


def test_adjusted_confidence_stays_bounded(loop, make_signal):
    seed(loop, make_signal, wins=3, losses=0, factors=("a", "b", "c"))
    loop.run_aggregation()
    assert loop.apply_learning("EURUSD", "BUY", 0.95, ["a", "b", "c"]).value == 0.95
    assert loop.apply_learning("EURUSD", "BUY", 0.10).value == 0.30


def test_unknown_symbol_is_unchanged(loop):
    adjusted = loop.apply_learning("GBPUSD", "BUY", 0.72, ["rsi:oversold"])
    assert adjusted.value == pytest.approx(0.72)
    assert adjusted.avoid_flag is False


def test_snapshot_is_a_copy(loop, make_signal):
    loop.record_signal(make_signal())
    copy = loop.snapshot("EURUSD")
    copy.win_count = 99
    assert loop.snapshot("EURUSD").win_count == 0


def test_metrics_and_insights(loop, make_signal):
    seed(loop, make_signal, wins=4, losses=3)
    metrics = loop.metrics()

    assert metrics.total_trades == 7
    assert metrics.winning_trades == 4
    assert metrics.win_rate == pytest.approx(4 / 7)
    assert metrics.symbol_performance["EURUSD"]["losses"] == 3
    assert metrics.best_factors == ["rsi:oversold"]

    lines = loop.insights()
    assert lines[0].startswith("Overall win rate")
    assert any("minimum score gap" in line for line in lines)


def test_insights_wait_for_data(loop):
    assert loop.insights() == ["Collecting data for learning analysis..."]


# ------------------------- Persistence ------------------------- #


def test_state_survives_restart(tmp_path, make_signal):
    store = SQLitePersistence(str(tmp_path / "brain.db"))
    loop = LearningFeedbackLoop(store=store)
    seed(loop, make_signal, wins=2, losses=1)
    pending = loop.record_signal(make_signal())
    loop.run_aggregation()

    restored = LearningFeedbackLoop(store=store)
    restored.restore(["EURUSD"])

    model = restored.snapshot("EURUSD")
    assert (model.win_count, model.loss_count) == (2, 1)
    assert [r.signal_id for r in restored.pending()] == [pending.signal_id]
    assert len(restored.history()) == 4


def test_store_failures_do_not_break_the_loop(make_signal, caplog):
    store = MagicMock()
    store.save_trade_record.side_effect = RuntimeError("disk full")
    store.save_brain_data.side_effect = RuntimeError("disk full")
    loop = LearningFeedbackLoop(store=store)

    with caplog.at_level(logging.WARNING):
        loop.record_signal(make_signal())
        resolved = observe(loop, 1.0760)

    assert resolved[0].status == "WIN"
    assert loop.store.failures == 3
    assert "disk full" in caplog.text
