"""HTTP API for the quest lifecycle engine."""
