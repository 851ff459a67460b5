"""Split proposal workflow and delivery."""

from pay_allocator.proposals.poller import ProposalPoller
from pay_allocator.proposals.workflow import (
    InvalidStateError,
    NotAuthorizedError,
    ProposalListener,
    SplitProposalWorkflow,
)

__all__ = [
    "InvalidStateError",
    "NotAuthorizedError",
    "ProposalListener",
    "ProposalPoller",
    "SplitProposalWorkflow",
]
