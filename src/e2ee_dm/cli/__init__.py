"""Command-line interface for the E2EE DM core (``e2ee-dm``)."""
