"""Cross-cutting infrastructure: logging and tracing."""
