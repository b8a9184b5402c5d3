ROLE_STUDENT = "student"
ROLE_SUPER_ADMIN = "super_admin"

REGISTRATION_REGISTERED = "registered"
REGISTRATION_CANCELLED = "cancelled"

PAYMENT_NOT_REQUIRED = "not_required"
PAYMENT_PENDING = "pending"
PAYMENT_SUBMITTED = "submitted"
PAYMENT_APPROVED = "approved"
PAYMENT_REJECTED = "rejected"

ATTENDANCE_PRESENT = "present"
ATTENDANCE_ABSENT = "absent"

CERT_STATUS_READY = "ready"
CERT_STATUS_REVOKED = "revoked"

CERT_ROLE_PARTICIPANT = "Participant"

# Public prefix recorded in certificate rows for generated PDFs
CERT_PUBLIC_PREFIX = "/uploads/certificates"
TEMPLATE_PUBLIC_PREFIX = "/uploads/templates"

VERIFY_PATH = "/api/certificates/verify"
