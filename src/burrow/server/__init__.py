"""Server — transports, request boundary, and shutdown coordination."""
