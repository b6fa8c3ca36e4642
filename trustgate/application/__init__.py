"""Application layer: gates, state machine and session orchestration."""
