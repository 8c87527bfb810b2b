"""Background workers: dramatiq actors and the periodic scheduler."""
