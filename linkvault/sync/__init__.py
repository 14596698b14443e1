from linkvault.sync.state import BookmarkListState
from linkvault.sync.strategies import (
    STRATEGY_AUTO,
    STRATEGY_POLLING,
    STRATEGY_SUBSCRIPTION,
    SYNC_STRATEGIES,
    PollingSync,
    SubscriptionSync,
)
from linkvault.sync.view import BookmarkListView
