"""Pure domain layer: clock, amount helpers and DTOs."""
