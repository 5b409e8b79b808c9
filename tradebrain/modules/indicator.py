import numpy as np
import pandas as pd
from scipy.signal import argrelextrema


class IndicatorCalculator:
    """Adds indicator columns to an OHLCV frame, one chained step per family."""

    def _normalize_columns(self):
        rename_map = {
            "open": "open_price",
            "high": "high_price",
            "low": "low_price",
            "close": "close_price",
        }
        self.df.rename(columns=rename_map, inplace=True)

    def __init__(self, df=None):
        self.df = df.copy().reset_index(drop=True) if df is not None else pd.DataFrame()
        self._normalize_columns()

    def run_all(self):
        if self.df.empty:
            return self
        return (
            self.calculate_ema()
                .calculate_atr()
                .find_swing_points()
                .calculate_rsi()
                .calculate_macd()
                .detect_candlestick_patterns()
        )

    def calculate_ema(self, fast=20, slow=50):
        close = self.df['close_price']
        self.df['ema_fast'] = close.ewm(span=fast, adjust=False).mean()
        self.df['ema_slow'] = close.ewm(span=slow, adjust=False).mean()
        return self

    def calculate_atr(self, period=14):
        df = self.df
        prev_close = df['close_price'].shift()
        df['tr'] = np.maximum(df['high_price'] - df['low_price'],
                              np.maximum(abs(df['high_price'] - prev_close),
                                         abs(df['low_price'] - prev_close)))
        df['atr'] = df['tr'].rolling(period, min_periods=1).mean()
        return self

    def find_swing_points(self, order=3):
        high = self.df['high_price']
        low = self.df['low_price']

        self.df['swing_high'] = np.nan
        self.df['swing_low'] = np.nan
        if len(self.df) <= 2 * order:
            return self

        high_idx = argrelextrema(high.values, np.greater_equal, order=order)[0]
        low_idx = argrelextrema(low.values, np.less_equal, order=order)[0]

        self.df.loc[high_idx, 'swing_high'] = high.iloc[high_idx].values
        self.df.loc[low_idx, 'swing_low'] = low.iloc[low_idx].values
        return self

    def calculate_rsi(self, period=14):
        delta = self.df['close_price'].diff()
        gain = delta.clip(lower=0)
        loss = -delta.clip(upper=0)
        avg_gain = gain.rolling(window=period).mean()
        avg_loss = loss.rolling(window=period).mean()
        rs = avg_gain / (avg_loss + 1e-10)
        self.df['rsi'] = 100 - (100 / (1 + rs))
        return self

    def calculate_macd(self, fast=12, slow=26, signal=9):
        ema_fast = self.df['close_price'].ewm(span=fast).mean()
        ema_slow = self.df['close_price'].ewm(span=slow).mean()
        self.df['macd'] = ema_fast - ema_slow
        self.df['macd_signal'] = self.df['macd'].ewm(span=signal).mean()
        self.df['macd_hist'] = self.df['macd'] - self.df['macd_signal']
        return self

    def detect_candlestick_patterns(self):
        df = self.df
        bullish = df['close_price'] > df['open_price']
        bearish = df['close_price'] < df['open_price']
        prev_bullish = bullish.shift(1, fill_value=False)
        prev_bearish = bearish.shift(1, fill_value=False)
        body = abs(df['close_price'] - df['open_price'])
        upper_shadow = df['high_price'] - df[['close_price', 'open_price']].max(axis=1)
        lower_shadow = df[['close_price', 'open_price']].min(axis=1) - df['low_price']

        df['doji'] = body <= ((df['high_price'] - df['low_price']) * 0.1)
        df['hammer'] = (lower_shadow > 2 * body) & (upper_shadow < body) & bullish
        df['shooting_star'] = (upper_shadow > 2 * body) & (lower_shadow < body) & bearish
        df['bullish_engulfing'] = (
            bullish & prev_bearish &
            (df['open_price'] < df['close_price'].shift(1)) &
            (df['close_price'] > df['open_price'].shift(1))
        )
        df['bearish_engulfing'] = (
            bearish & prev_bullish &
            (df['open_price'] > df['close_price'].shift(1)) &
            (df['close_price'] < df['open_price'].shift(1))
        )
        return self

    def get_df(self):
        return self.df
