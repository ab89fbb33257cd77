"""
Business services - 每个聚合一个服务类，构造时传入 Session

    >>> from app.services.booking_service import BookingService
"""
