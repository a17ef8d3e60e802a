"""Outbound email: transports, delivery engine, rendering."""
