from typing import Dict, List, Optional, Any
import asyncio
import structlog
from datetime import date, timedelta

from dayli_agent.domain.clock import Clock, system_clock
from dayli_agent.domain.models.records import Proposal

logger = structlog.get_logger(__name__)


class InMemoryProposalStore:
    """Holds workflow proposals between chat turns until confirmed or expired"""

    def __init__(self, ttl_minutes: int = 10, clock: Clock = system_clock):
        self.ttl = timedelta(minutes=ttl_minutes)
        self._clock = clock
        self.proposals: Dict[str, Proposal] = {}
        self._lock = asyncio.Lock()

    async def save_proposal(
        self,
        user_id: str,
        proposal_type: str,
        workflow_name: str,
        proposal_date: Optional[date],
        data: Any
    ) -> str:
        """Save a new proposal and return its id"""

        async with self._lock:
            self._clear_expired()

            now = self._clock()
            proposal = Proposal(
                user_id=user_id,
                type=proposal_type,
                workflow_name=workflow_name,
                date=proposal_date,
                data=data,
                created_at=now,
                expires_at=now + self.ttl
            )
            self.proposals[proposal.id] = proposal

        logger.info("Saved proposal", proposal_id=proposal.id, workflow=workflow_name, date=str(proposal_date))
        return proposal.id

    async def get_proposal(self, proposal_id: str) -> Optional[Proposal]:
        async with self._lock:
            self._clear_expired()
            return self.proposals.get(proposal_id)

    async def get_latest_proposal(
        self,
        user_id: str,
        workflow_name: str,
        proposal_date: Optional[date] = None
    ) -> Optional[Proposal]:
        """Newest proposal for a workflow, optionally restricted to a date"""

        async with self._lock:
            self._clear_expired()
            matching = [
                p for p in self.proposals.values()
                if p.user_id == user_id
                and p.workflow_name == workflow_name
                and (proposal_date is None or p.date == proposal_date)
            ]
            return max(matching, key=lambda p: p.created_at, default=None)

    async def get_active_proposals(self, user_id: str, limit: int = 5) -> List[Proposal]:
        """Unexpired proposals for a user, newest first"""

        async with self._lock:
            self._clear_expired()
            user_proposals = [p for p in self.proposals.values() if p.user_id == user_id]
            user_proposals.sort(key=lambda p: p.created_at, reverse=True)
            return user_proposals[:limit]

    async def clear_proposal(self, proposal_id: str) -> None:
        async with self._lock:
            self.proposals.pop(proposal_id, None)

    def _clear_expired(self) -> int:
        now = self._clock()
        expired = [pid for pid, p in self.proposals.items() if p.expires_at < now]
        for proposal_id in expired:
            del self.proposals[proposal_id]
        return len(expired)
