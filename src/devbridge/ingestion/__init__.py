"""Ingestion layer.

Converts inbound transport messages into presence updates and request
completions. Only this package interprets device payloads.
"""
