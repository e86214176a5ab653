"""PyGTD application layer: state and bootstrap."""
