"""Production Counter: camera counter reconciliation and production plan queue."""
