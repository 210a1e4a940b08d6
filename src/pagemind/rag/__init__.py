"""Retrieval, context assembly and answer synthesis."""
