"""Prompt Teams: team membership, invitations and consistent prompt ratings."""

__version__ = "0.4.0"
