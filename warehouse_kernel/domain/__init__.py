"""Pure domain types: clock, value objects and DTOs."""
