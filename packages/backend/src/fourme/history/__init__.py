"""Task history — the append-only audit trail behind /tasks/:id/history."""
