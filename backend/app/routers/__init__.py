# API Routers
from app.routers import auth, rooms, bookings, folios, invoices

__all__ = ['auth', 'rooms', 'bookings', 'folios', 'invoices']
