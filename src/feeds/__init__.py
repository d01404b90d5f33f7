"""Live candidate feeds."""
