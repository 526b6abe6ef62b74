"""Pure domain layer: value objects, rules, and DTOs.  ZERO I/O."""
