"""Service adapters (HTTP collaborators, fakes, resilience)."""
