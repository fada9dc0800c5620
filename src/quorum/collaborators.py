# SPDX-FileCopyrightText: 2026 Quorum authors
#
# SPDX-License-Identifier: Apache-2.0

"""Collaborator protocols: the transaction builder, signer agent and submitter.

The coordinator never looks inside an artifact. Whatever these raise is
propagated to the caller unchanged.
"""

from collections.abc import Collection
from typing import NamedTuple, Protocol, runtime_checkable


class UnlockPlan(NamedTuple):
    """What the builder produced and what the proposal declares."""

    artifact_template: str
    required_authorizers: frozenset[str]
    threshold: int


@runtime_checkable
class TransactionBuilder(Protocol):
    """Builds the unsigned artifact for a set of signing authorizers."""

    async def build(
        self, destination: str, signing_authorizers: Collection[str]
    ) -> UnlockPlan:
        """Produce the template declaring exactly *signing_authorizers*.

        The returned threshold comes from the configuration that guards the
        funds being moved.
        """
        ...


@runtime_checkable
class SignerAgent(Protocol):
    """A wallet holding one authorizer's keys."""

    @property
    def identity(self) -> str:
        """Authorizer identity this agent signs as."""
        ...

    async def sign(self, artifact: str, partial: bool = True) -> str:
        """Return *artifact* with exactly one more witness attached."""
        ...


@runtime_checkable
class Submitter(Protocol):
    async def submit(self, artifact: str) -> str:
        """Broadcast a fully witnessed artifact, return its finalized reference."""
        ...
