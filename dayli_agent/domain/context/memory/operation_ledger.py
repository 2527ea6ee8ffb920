from typing import List, Optional, Tuple
import asyncio
import structlog

from dayli_agent.domain.models.operation import TrackedOperation

logger = structlog.get_logger(__name__)


class OperationLedger:
    """Bounded log of executed operations, newest first.

    This is the data source for resolving "it" and "that one" across turns.
    """

    def __init__(self, max_size: int = 50):
        if max_size < 1:
            raise ValueError("max_size must be at least 1")

        self.max_size = max_size
        self._operations: List[TrackedOperation] = []
        self._lock = asyncio.Lock()

    async def record(self, operation: TrackedOperation) -> None:
        """Prepend an operation and drop the oldest beyond the cap"""

        async with self._lock:
            self._operations.insert(0, operation)

            if len(self._operations) > self.max_size:
                del self._operations[self.max_size:]

        logger.debug(
            "Tracked operation",
            operation_id=operation.id,
            capability=operation.capability,
            affected_entities=operation.affected_entities
        )

    async def recent(self, limit: int = 10) -> List[TrackedOperation]:
        """Most recent operations, newest first"""

        async with self._lock:
            return self._operations[:max(limit, 0)]

    async def find_by_entity(self, entity_kind: str, entity_id: str) -> Optional[TrackedOperation]:
        """Newest operation whose affected entities of this kind include entity_id"""

        async with self._lock:
            for operation in self._operations:
                if entity_id in operation.entity_ids(entity_kind):
                    return operation
            return None

    async def most_recent_entity_of_type(self, entity_kind: str) -> Optional[Tuple[str, TrackedOperation]]:
        """First id of the newest operation that touched this kind of entity.

        Within one operation the earliest affected id is treated as primary.
        """

        async with self._lock:
            for operation in self._operations:
                ids = operation.entity_ids(entity_kind)
                if ids:
                    return ids[0], operation
            return None

    async def clear(self) -> None:
        async with self._lock:
            self._operations.clear()

    async def size(self) -> int:
        async with self._lock:
            return len(self._operations)
