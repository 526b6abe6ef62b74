"""
Booking Kernel - payment lifecycle and commission reconciliation.

A transactional engine for travel bookings with:
- Up to three ordered, immutable payment tranches per booking
- Caller-driven payment status with change detection
- Idempotent, at-most-once commission creation per booking
- Post-commit commission reconciliation backed by a durable outbox marker
"""

__version__ = "0.1.0"
