"""GTC membership API."""
