"""Pure domain core: money, status derivation, DTOs, events, clock."""
