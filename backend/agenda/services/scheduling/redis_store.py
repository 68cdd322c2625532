# backend/agenda/services/scheduling/redis_store.py
"""
Redis cache for generated (pre-conflict) slots using Sorted Sets.

Key format: slots:day:{agent_id}:{date}:{duration}
Value: Sorted Set where member = "HH:MM", score = slot start timestamp
       (unix time at which the slot stops being bookable).

Query: ZRANGEBYSCORE key ({now_ts} +inf -> only slots still in the future.
Sentinel: "__empty__" with score=0 marks "calculated, zero slots".

The cache is advisory: the booking commit always recalculates from the
database. Keys expire after a short TTL and are dropped on settings edits.
"""

from datetime import date, datetime

from redis import Redis

EMPTY_SENTINEL = "__empty__"


def _decode(member) -> str:
    return member.decode() if isinstance(member, bytes) else member


class SlotsRedisStore:
    """Redis storage wrapper using Sorted Sets for slot data."""

    KEY_PREFIX = "slots:day"

    def __init__(self, redis: Redis, ttl_seconds: int = 300):
        self.redis = redis
        self.ttl_seconds = ttl_seconds

    def _key(self, agent_id: int, dt: date, duration: int) -> str:
        return f"{self.KEY_PREFIX}:{agent_id}:{dt.isoformat()}:{duration}"

    # ── Write ────────────────────────────────────────────────────────────

    def store_day_slots(
        self,
        agent_id: int,
        dt: date,
        duration: int,
        slots: list[tuple[str, float]],
    ) -> None:
        """
        Store calculated slots for a day.

        Args:
            agent_id: Agent ID
            dt: Target date
            duration: Slot duration the list was generated for
            slots: List of (time_str, start_ts) pairs.
                   Empty list -> sentinel is stored.
        """
        key = self._key(agent_id, dt, duration)
        pipe = self.redis.pipeline()

        # Remove old data
        pipe.delete(key)

        if slots:
            pipe.zadd(key, {time_str: start_ts for time_str, start_ts in slots})
        else:
            # Empty day: sentinel so EXISTS returns True
            pipe.zadd(key, {EMPTY_SENTINEL: 0})

        pipe.expire(key, self.ttl_seconds)
        pipe.execute()

    # ── Read ─────────────────────────────────────────────────────────────

    def get_available_slots(
        self,
        agent_id: int,
        dt: date,
        duration: int,
        now: datetime,
    ) -> list[str] | None:
        """
        Get slots that have not started yet.

        Returns:
            Sorted list of "HH:MM" strings, or None on cache miss.
        """
        key = self._key(agent_id, dt, duration)
        if not self.redis.exists(key):
            return None

        members = self.redis.zrangebyscore(key, f"({now.timestamp()}", "+inf")
        return [
            m for m in (_decode(raw) for raw in members)
            if m != EMPTY_SENTINEL
        ]

    # ── Delete ───────────────────────────────────────────────────────────

    def delete_agent_slots(
        self,
        agent_id: int,
        dates: list[date] | None = None,
    ) -> int:
        """
        Delete cached slots.

        Args:
            agent_id: Agent ID
            dates: Specific dates (all durations), or None to delete all for agent.

        Returns:
            Number of deleted keys.
        """
        keys: list = []
        if dates:
            for dt in dates:
                keys.extend(self.redis.scan_iter(match=f"{self.KEY_PREFIX}:{agent_id}:{dt.isoformat()}:*"))
        else:
            keys = list(self.redis.scan_iter(match=f"{self.KEY_PREFIX}:{agent_id}:*"))

        if not keys:
            return 0

        return self.redis.delete(*keys)
