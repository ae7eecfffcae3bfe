from .item import Item
from .rental_request import RentalRequest
from .availability_block import AvailabilityBlock
from .condition_report import ConditionReport
from .extension import Extension
from .dispute import Dispute
from .escrow import EscrowAccount, LedgerEntry
from .processor_event import ProcessorEvent
from .notification import Notification

__all__ = [
    "Item",
    "RentalRequest",
    "AvailabilityBlock",
    "ConditionReport",
    "Extension",
    "Dispute",
    "EscrowAccount",
    "LedgerEntry",
    "ProcessorEvent",
    "Notification",
]
