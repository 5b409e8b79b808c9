"""Exception types raised across the decision service."""


class TradeBrainError(Exception):
    """Base class for every error raised by tradebrain."""


class EvidenceError(TradeBrainError):
    """An evidence provider failed or timed out."""


class InvalidLadderError(TradeBrainError):
    """A computed stop/take-profit ladder is out of order or below the minimum risk-reward."""


class PersistenceError(TradeBrainError):
    """The persistence store rejected or failed an operation."""


class ConfigError(TradeBrainError, ValueError):
    """Configuration is missing or out of range."""


class MarketDataError(TradeBrainError):
    """Prices or candles could not be fetched or parsed."""
