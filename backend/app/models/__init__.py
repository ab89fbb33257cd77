# Ontology Models
from app.models.ontology import (
    Hotel, RoomType, Room, Guest, Booking, Folio, FolioCharge, FolioPayment,
    Invoice, InvoiceItem, PosOrder, BookingActivity, Employee
)

__all__ = [
    'Hotel', 'RoomType', 'Room', 'Guest', 'Booking', 'Folio', 'FolioCharge',
    'FolioPayment', 'Invoice', 'InvoiceItem', 'PosOrder', 'BookingActivity', 'Employee'
]
