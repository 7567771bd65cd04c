"""Small helpers shared by the services."""
