"""Execution gate: the single exit from APPROVED."""
import logging
from typing import Optional

from xrpl_custody.exceptions import InvalidStateError, NotAuthorizedError
from xrpl_custody.models.approval import ApprovalRequest, ApprovalStatus
from xrpl_custody.services.approval import ApprovalLedger

logger = logging.getLogger(__name__)


class ExecutionGate:
    """
    Permits at most one execution per approved request.

    The write is a compare-and-set on ``status = APPROVED``; of any number of
    concurrent callers exactly one sees a row updated, the rest get
    InvalidStateError.
    """

    def __init__(self, ledger: ApprovalLedger):
        self.ledger = ledger

    async def execute(
        self,
        request_id: str,
        executed_by: str,
        correlation_id: Optional[str] = None
    ) -> ApprovalRequest:
        request = await self.ledger.get_request(request_id, correlation_id)

        won = await self.ledger.transition(
            request,
            ApprovalStatus.EXECUTED,
            correlation_id,
            actor_id=executed_by,
            values={"executed_at": self.ledger.clock(), "executed_by": executed_by},
            payload={"executed_by": executed_by}
        )
        if not won:
            raise InvalidStateError(
                f"Approval request {request.id} was not APPROVED at execution time",
                from_status=request.status.value,
                to_status=ApprovalStatus.EXECUTED.value,
            )

        return request

    async def cancel(
        self,
        request_id: str,
        user_id: str,
        correlation_id: Optional[str] = None
    ) -> ApprovalRequest:
        """Withdraw a PENDING request; only its requestor may do this."""
        request = await self.ledger.get_request(request_id, correlation_id)

        if request.requested_by != user_id:
            logger.warning(f"User {user_id} attempted to cancel approval request {request.id} they did not open")
            raise NotAuthorizedError(
                "Only the requestor can cancel an approval request",
                details={"request_id": request.id}
            )

        if request.status != ApprovalStatus.PENDING:
            raise InvalidStateError(
                f"Approval request {request.id} is {request.status.value}; only PENDING requests can be cancelled",
                from_status=request.status.value,
                to_status=ApprovalStatus.CANCELLED.value,
            )

        won = await self.ledger.transition(
            request,
            ApprovalStatus.CANCELLED,
            correlation_id,
            actor_id=user_id,
        )
        if not won:
            raise InvalidStateError(
                f"Approval request {request.id} was no longer PENDING at cancellation time",
                from_status=request.status.value,
                to_status=ApprovalStatus.CANCELLED.value,
            )

        return request
