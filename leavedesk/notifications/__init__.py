"""Notifications module — templated outbound messages and the in-app inbox."""
