"""Classification, valuation and reconciliation engine."""

from .assets import AssetRegistry
from .classifier import Classification, DirectionClassifier
from .context import SyncContext
from .currency import CurrencyNormalizer, ValuedTrade
from .dedup import Deduplicator, ReconcilePlan
from .normalizer import EventNormalizer
from .positions import Position, PositionAggregator, resolve_usd_value
from .routing import RoutingFilter

__all__ = [
    "AssetRegistry",
    "Classification",
    "CurrencyNormalizer",
    "Deduplicator",
    "DirectionClassifier",
    "EventNormalizer",
    "Position",
    "PositionAggregator",
    "ReconcilePlan",
    "RoutingFilter",
    "SyncContext",
    "ValuedTrade",
    "resolve_usd_value",
]
