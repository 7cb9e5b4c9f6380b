"""License lifecycle and real-time enforcement engine."""
