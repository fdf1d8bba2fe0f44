"""Wire Schemas — pydantic models for payloads sent to the persistence service."""
