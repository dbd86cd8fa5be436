"""Pure domain layer: clock, DTOs and workflow value types."""
