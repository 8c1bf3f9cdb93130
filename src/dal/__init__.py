"""Data Abstraction Layer (DAL) for catalog access."""
