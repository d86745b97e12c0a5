"""Outbound webhook delivery for creator events."""
