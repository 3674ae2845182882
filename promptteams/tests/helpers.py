"""Principals and setup helpers shared by the test modules."""

from __future__ import annotations

import asyncio

from promptteams.core.models import Principal

ALICE = Principal(id="u_alice", display_name="Alice", email="alice@acme.test")
BOB = Principal(id="u_bob", display_name="Bob", email="bob@acme.test")
CAROL = Principal(id="u_carol", display_name="Carol", email="carol@acme.test")
MALLORY = Principal(id="u_mallory", display_name="Mallory", email="mallory@evil.test")


def run_async(coro):
    """Helper to run async coroutine in sync test."""
    return asyncio.run(coro)


async def make_team(pt, owner=ALICE, name="Acme", members=()):
    """Create a team owned by ``owner`` and add ``members`` through real invitations.

    ``members`` is a sequence of (principal, role) pairs.
    """
    await pt.sign_in(owner)
    team = await pt.create_team(name)
    for principal, role in members:
        await pt.sign_in(owner)
        result = await pt.create_invitation(team.id, principal.email, role)
        await pt.sign_in(principal)
        await pt.accept_invitation(result.invitation.id)
    await pt.sign_in(owner)
    return await pt.get_team(team.id)
