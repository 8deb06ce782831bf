"""Delivery bounded context — courier dispatch and delivery tracking.

Takes paid orders, hands them to third-party couriers, and reconciles each
courier's status vocabulary into one delivery lifecycle. Uses CQRS (not event
sourcing) because couriers own tracking state and the local record is an
append-only log of what they reported.
"""

from protean.domain import Domain

delivery = Domain(name="delivery")
