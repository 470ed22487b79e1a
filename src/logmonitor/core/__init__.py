"""Core engine: configuration model, filters, instruments and workers."""
