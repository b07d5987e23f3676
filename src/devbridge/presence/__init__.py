"""Presence layer.

Holds the latest known state of every device and the rule that turns
heartbeat timing into an online/offline flag.
"""
