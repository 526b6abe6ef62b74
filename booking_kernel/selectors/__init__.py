"""Read-only query selectors returning frozen DTOs."""

from booking_kernel.selectors.booking_selector import BookingSelector, build_booking_view
from booking_kernel.selectors.commission_selector import CommissionSelector

__all__ = ["BookingSelector", "CommissionSelector", "build_booking_view"]
