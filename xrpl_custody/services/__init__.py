"""Business logic services."""
from xrpl_custody.services.audit import AuditService
from xrpl_custody.services.auth import AuthService
from xrpl_custody.services.notifications import NotificationHub, WorkflowNotification
from xrpl_custody.services.policy import PolicyStore
from xrpl_custody.services.evaluator import Decision, PolicyEvaluator, SigningContext, decide
from xrpl_custody.services.approval import ApprovalLedger, SignatureCollector
from xrpl_custody.services.execution import ExecutionGate
from xrpl_custody.services.signing import SigningAuthorization, SigningAuthorizer

__all__ = [
    "AuditService",
    "AuthService",
    "NotificationHub",
    "WorkflowNotification",
    "PolicyStore",
    "Decision",
    "PolicyEvaluator",
    "SigningContext",
    "decide",
    "ApprovalLedger",
    "SignatureCollector",
    "ExecutionGate",
    "SigningAuthorization",
    "SigningAuthorizer",
]
