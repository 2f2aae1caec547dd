# Models
from .product import Product
from .stock_balance import StockBalance
from .stock_reservation import StockReservation, ReservationStatus
from .stock_ledger import StockLedgerEntry, TxnType

__all__ = [
    "Product",
    "StockBalance",
    "StockReservation",
    "ReservationStatus",
    "StockLedgerEntry",
    "TxnType",
]
