"""Application layer - service-facing error handling built on the recovery manager."""
