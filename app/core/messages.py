"""User-facing messages for lifecycle errors.

Clients match on these strings, so they must stay stable.
"""

EMPLOYEE_NOT_FOUND = "Employee not found"
EMPLOYEE_INACTIVE = "Employee is inactive. Please select an active employee."
VISITOR_NOT_FOUND = "Visitor not found"
APPOINTMENT_NOT_FOUND = "Appointment not found"
DELETED_APPOINTMENT_NOT_FOUND = "Deleted appointment not found"
APPOINTMENT_ACCESS_DENIED = "Access denied to this appointment"

SLOT_TAKEN = "Employee already has an appointment at this time"

ONLY_PENDING_CAN_BE_APPROVED = "Only pending appointments can be approved"
ONLY_PENDING_CAN_BE_REJECTED = "Only pending appointments can be rejected"
NOT_PENDING_FOR_CHECK_IN = "Appointment is not in pending status"
CANNOT_CANCEL_COMPLETED = "Cannot cancel a completed appointment"
ALREADY_CANCELLED = "Appointment is already cancelled"
ALREADY_CHECKED_OUT = "Appointment is already checked out"

CALENDAR_RANGE_REQUIRED = "Start date and end date are required"
CALENDAR_RANGE_INVALID = "Start date must be on or before end date"

LINK_INVALID = "Invalid or expired link"
LINK_USED = "Link expired or already used"
LINK_APPOINTMENT_PASSED = "Link expired or already used - appointment time has passed"
LINK_STATUS_LOCKED = "Appointment status cannot be changed"

BOOKING_LINK_INVALID = "Invalid appointment link"
BOOKING_LINK_EXPIRED = "This appointment link has expired"
BOOKING_LINK_USED = "This appointment link has already been used"
BOOKING_LINK_NOT_FOUND = "Appointment link not found"
BOOKING_VISITOR_REQUIRED = "Visitor is required to book appointment"
BOOKING_VISITOR_MISMATCH = "Visitor email does not match this appointment link"
