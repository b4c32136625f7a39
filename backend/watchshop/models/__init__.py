from .auth import User, SessionToken
from .security import SecurityEvent
from .transactions import Sale, ServiceJob, Expense
from .ledger import COBRecord, AuditEvent

__all__ = [
    'User', 'SessionToken', 'SecurityEvent',
    'Sale', 'ServiceJob', 'Expense',
    'COBRecord', 'AuditEvent',
]
