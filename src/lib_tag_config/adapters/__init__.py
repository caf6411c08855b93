"""Adapters implementing the application ports: transports, settings, tag state, export."""
