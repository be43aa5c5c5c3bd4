"""
Opportunity de-duplication across scan cycles.

Prevents the same opportunity from re-alerting every cycle by:
1. Hashing opportunities on token, pool path and a $10 net-profit bucket
2. Remembering seen hashes in a single-owner set guarded by a lock
3. Clearing the set in bulk once it grows past a size limit

The size-bounded clear is imprecise: a hash can stay suppressed until
unrelated traffic fills the set, and can re-alert right after a clear.
"""

import asyncio
import logging
from decimal import Decimal
from typing import Any, Dict, Set

from dex.opportunity_math import profit_bucket
from dex.types import ArbitrageOpportunity

logger = logging.getLogger(__name__)

PROFIT_BUCKET_USD = Decimal("10")
DEFAULT_MAX_ENTRIES = 10_000


def opportunity_hash(opp: ArbitrageOpportunity) -> str:
    """
    Stable identity of an opportunity across cycles.

    Format: "<token>:<pool1>-<pool2>[-<pool3>]:<floor(net/10)*10>"
    """
    pools = "-".join(opp.pool_addresses)
    bucket = profit_bucket(opp.net_profit_usd, PROFIT_BUCKET_USD)
    return f"{opp.token_address}:{pools}:{bucket}"


class OpportunityDeduplicator:
    """
    Owner of the seen-hash set.

    All mutation goes through check_and_mark() and cleanup(), both
    serialized by an asyncio.Lock, so comparisons may run concurrently
    without racing on the set.
    """

    def __init__(self, max_entries: int = DEFAULT_MAX_ENTRIES):
        """
        Initialize deduplicator.

        Args:
            max_entries: Set size above which cleanup() clears everything
        """
        if max_entries < 1:
            raise ValueError("max_entries must be positive")
        self.max_entries = max_entries
        self._seen: Set[str] = set()
        self._lock = asyncio.Lock()
        self.suppressed_count = 0
        self.clear_count = 0

    async def check_and_mark(self, opp_hash: str) -> bool:
        """
        Record a hash.

        Returns:
            True if the hash is new (publish), False if already seen
        """
        async with self._lock:
            if opp_hash in self._seen:
                self.suppressed_count += 1
                return False
            self._seen.add(opp_hash)
            return True

    async def is_new(self, opp: ArbitrageOpportunity) -> bool:
        return await self.check_and_mark(opportunity_hash(opp))

    async def cleanup(self) -> int:
        """
        Clear the set if it has outgrown max_entries.

        Returns:
            Number of hashes dropped (0 when under the limit)
        """
        async with self._lock:
            size = len(self._seen)
            if size <= self.max_entries:
                return 0
            self._seen.clear()
            self.clear_count += 1
        logger.info(f"Cleared {size} cached opportunity hashes (limit {self.max_entries})")
        return size

    def __len__(self) -> int:
        return len(self._seen)

    def __contains__(self, opp_hash: str) -> bool:
        return opp_hash in self._seen

    def get_stats(self) -> Dict[str, Any]:
        return {
            "seen": len(self._seen),
            "max_entries": self.max_entries,
            "suppressed": self.suppressed_count,
            "clears": self.clear_count,
        }
