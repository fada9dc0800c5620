# SPDX-FileCopyrightText: 2026 Quorum authors
#
# SPDX-License-Identifier: Apache-2.0

"""Signature accumulation: adding one witness to the shared artifact."""

from typing import Protocol, runtime_checkable

from quorum.collaborators import SignerAgent
from quorum.errors import SignerNotRequired


@runtime_checkable
class SignatureAccumulator(Protocol):
    """Appends one authorizer's witness to an artifact.

    Previously present witnesses must survive the merge. Merges for one
    session are never run concurrently against the same artifact value, so
    no ordering guarantee is asked of implementations.
    """

    async def merge(self, artifact: str, authorizer: str) -> str: ...


class SignerAccumulator:
    """Accumulator backed by a single signer agent.

    Only merges on behalf of the agent's own identity.
    """

    def __init__(self, signer: SignerAgent) -> None:
        self._signer = signer

    @property
    def identity(self) -> str:
        return self._signer.identity

    async def merge(self, artifact: str, authorizer: str) -> str:
        if authorizer != self._signer.identity:
            raise SignerNotRequired(authorizer)
        return await self._signer.sign(artifact, partial=True)
