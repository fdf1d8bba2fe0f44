"""Services Layer — async orchestration around the pure core (executor, controller)."""
