"""
Proposal Poller

Delivers new split proposals to a signed-in user by polling the store,
every 30 seconds by default.

Best effort: a failed poll is logged and the next one tries again. A lapsed
session is the exception; it is raised so the caller can sign in again.
"""

import asyncio
import inspect
from typing import Optional
from uuid import UUID

import structlog

from pay_allocator.config import get_settings
from pay_allocator.models.finance import SplitProposal
from pay_allocator.proposals.workflow import ProposalListener, SplitProposalWorkflow
from pay_allocator.services.storage import StorageError, UnauthenticatedError


logger = structlog.get_logger(__name__)


class ProposalPoller:
    """Emits each pending proposal addressed to one user exactly once."""

    def __init__(
        self,
        workflow: SplitProposalWorkflow,
        user_id: UUID,
        interval: Optional[float] = None,
    ):
        self._workflow = workflow
        self._user_id = user_id
        self._interval = (
            interval
            if interval is not None
            else get_settings().app.proposal_poll_interval_seconds
        )
        self._seen: set[UUID] = set()
        self._callbacks: list[ProposalListener] = []
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    def subscribe(self, callback: ProposalListener) -> None:
        self._callbacks.append(callback)

    async def poll_once(self) -> list[SplitProposal]:
        """Fetch pending proposals and emit the ones not seen before."""
        try:
            pending = await self._workflow.pending_for(self._user_id)
        except UnauthenticatedError:
            raise
        except StorageError as e:
            logger.warning(
                "proposal_poll_failed",
                user_id=str(self._user_id),
                error=str(e),
                transient=e.transient,
            )
            return []

        fresh = [p for p in pending if p.id not in self._seen]
        # Decided or superseded proposals never become pending again
        self._seen = {p.id for p in pending}
        for proposal in fresh:
            await self._emit(proposal)
        return fresh

    async def _emit(self, proposal: SplitProposal) -> None:
        for callback in list(self._callbacks):
            try:
                result = callback(proposal)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(
                    "proposal_callback_failed",
                    proposal_id=str(proposal.id),
                    error=str(e),
                )

    async def run(self) -> None:
        """Poll until stop() is called."""
        self._running = True
        logger.info("proposal_polling_started", user_id=str(self._user_id), interval=self._interval)
        while self._running:
            await self.poll_once()
            if not self._running:
                break
            await asyncio.sleep(self._interval)
        logger.info("proposal_polling_stopped", user_id=str(self._user_id))

    def stop(self) -> None:
        self._running = False
