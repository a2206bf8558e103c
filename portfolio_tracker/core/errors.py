"""
Portfolio error taxonomy.

ValidationError  - rejected input (oversell, sell without holding, malformed
                   transaction or account values). Raised before any write.
NotFoundError    - a referenced transaction/holding id does not exist.
PersistenceError - the storage backend failed. Never retried here.
"""


class PortfolioError(Exception):
    """Base class for portfolio tracker errors"""


class ValidationError(PortfolioError, ValueError):
    """Input rejected before any persistence write"""


class NotFoundError(PortfolioError, LookupError):
    """Referenced record does not exist"""

    def __init__(self, kind: str, record_id: str):
        super().__init__(f"{kind} not found: {record_id}")
        self.kind = kind
        self.record_id = record_id


class PersistenceError(PortfolioError):
    """Underlying storage failure"""
