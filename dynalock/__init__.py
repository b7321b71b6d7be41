"""Distributed locks on DynamoDB with leases, heartbeats and session monitors."""

__version__ = "2.0.0"