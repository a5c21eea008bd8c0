from .delivery import FAILURE_STATUSES, DeliveryOutcome, DeliveryStatus
from .record import Base, DeliveryRecord
from .request import OutboundRequest

__all__ = [
    "DeliveryOutcome", "DeliveryStatus", "FAILURE_STATUSES",
    "Base", "DeliveryRecord",
    "OutboundRequest",
]
