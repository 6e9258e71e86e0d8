"""Principals, credentials, sessions and federated sign-in."""
