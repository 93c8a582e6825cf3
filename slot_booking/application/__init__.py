from .services import (
    BookingApplicationService,
    BookingDTO,
    CancelBookingRequest,
    CreateBookingRequest,
)

__all__ = [
    "BookingApplicationService",
    "BookingDTO",
    "CancelBookingRequest",
    "CreateBookingRequest",
]
