from unittest.mock import AsyncMock

import pytest
from telegram.error import TelegramError

from tradebrain.models.trade_record import TradeRecord
from tradebrain.notifiers.hub import NotifierHub
from tradebrain.notifiers.telegram import TelegramNotifier
from tradebrain.utils.event_bus import EventBus

# ------------------------- Tests ------------------------- #


@pytest.mark.asyncio
async def test_signal_event_reaches_every_backend(make_signal):
    first, second = AsyncMock(), AsyncMock()
    hub = NotifierHub([first, second])
    bus = EventBus()
    hub.attach(bus)

    signal = make_signal(symbol="EURUSD")
    bus.publish("signal", signal)
    await bus.drain()

    text = first.send.await_args.args[0]
    assert "EURUSD" in text and "BUY" in text
    assert "TP3 1.075" in text
    second.send.assert_awaited_once_with(text)
    await bus.close()


@pytest.mark.asyncio
async def test_failing_backend_does_not_block_others(make_signal):
    broken, healthy = AsyncMock(), AsyncMock()
    broken.send.side_effect = RuntimeError("down")
    hub = NotifierHub([broken, healthy])

    await hub.send_trade_signal(make_signal())

    healthy.send.assert_awaited_once()


@pytest.mark.asyncio
async def test_outcome_message_lists_lessons(make_signal):
    backend = AsyncMock()
    hub = NotifierHub([backend])
    record = TradeRecord.from_signal(make_signal())
    record.status = "LOSS"
    record.exit_price = 1.049
    record.pnl_percentage = -0.57
    record.lessons_learned = ["avoid during high-impact news"]

    await hub.send_trade_outcome(record)

    text = backend.send.await_args.args[0]
    assert "LOSS" in text and "-0.57%" in text
    assert "avoid during high-impact news" in text


def test_hub_without_credentials_has_no_backends():
    assert NotifierHub.from_config({}).backends == []


@pytest.mark.asyncio
async def test_telegram_notifier_sends_and_swallows_errors():
    bot = AsyncMock()
    notifier = TelegramNotifier(token="t", chat_id="42", bot=bot)

    await notifier.send("hello")
    bot.send_message.assert_awaited_once_with(chat_id="42", text="hello")

    bot.send_message.side_effect = TelegramError("flood control")
    await notifier.send("again")
