"""Infrastructure layer: clock, persistence and collaborator adapters."""
