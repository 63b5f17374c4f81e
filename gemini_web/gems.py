"""
Gem Registry
============

Local cache of the account's gems (system-prompt presets), kept in sync
through the gem RPCs of batchexecute.
"""

import logging
from typing import TYPE_CHECKING, Any

from .core.exceptions import api_error
from .models import Gem, GemJar
from .protocol import schema
from .protocol.constants import RpcId
from .protocol.envelope import RpcCall, RpcResult, match_results

if TYPE_CHECKING:
    from .client import GeminiWebClient

logger = logging.getLogger("gemini_web.gems")

SYSTEM_GEMS_IDENTIFIER = "system"
CUSTOM_GEMS_IDENTIFIER = "custom"

# First element of the list-gems payload selecting which gems to list.
LIST_CUSTOM = 2
LIST_SYSTEM = 3
LIST_SYSTEM_WITH_HIDDEN = 4


def gem_fields(name: str, prompt: str, description: str) -> list[Any]:
    """Positional gem definition shared by create and update."""
    return [name, description, prompt, None, None, None, None, None, 0, None, 1, None, None, None, []]


def _gem_id(gem: Gem | str) -> str:
    return gem.id if isinstance(gem, Gem) else gem


class GemRegistry:
    """Gems of one client. Not safe for concurrent mutation."""

    def __init__(self, client: "GeminiWebClient"):
        self.client = client
        self.jar = GemJar()

    def __len__(self) -> int:
        return len(self.jar)

    def get(self, id: str | None = None, name: str | None = None) -> Gem | None:
        return self.jar.get(id=id, name=name)

    def filter(self, predefined: bool | None = None, name: str | None = None) -> GemJar:
        return self.jar.filter(predefined=predefined, name=name)

    async def _call_one(self, call: RpcCall) -> Any:
        results = await self.client.batch_execute([call])
        (result,) = match_results([call], results)
        if result is None:
            raise api_error(f"No result for RPC {call.rpc_id} in the response")
        return result.json()

    async def fetch(self, include_hidden: bool = False, language: str = "en") -> GemJar:
        """Replace the registry with the predefined and custom gems of the account."""
        system_call = RpcCall.build(
            RpcId.LIST_GEMS,
            [LIST_SYSTEM_WITH_HIDDEN if include_hidden else LIST_SYSTEM, [language], 0],
            identifier=SYSTEM_GEMS_IDENTIFIER,
        )
        custom_call = RpcCall.build(
            RpcId.LIST_GEMS, [LIST_CUSTOM, [language], 0], identifier=CUSTOM_GEMS_IDENTIFIER
        )
        results = await self.client.batch_execute([system_call, custom_call])
        system_result, custom_result = match_results([system_call, custom_call], results)
        if system_result is None and custom_result is None:
            raise api_error("Gem list response carried no results")

        self.jar = GemJar(
            self._parse(system_result, predefined=True)
            + self._parse(custom_result, predefined=False)
        )
        logger.info("Fetched %d gems", len(self.jar))
        return self.jar

    @staticmethod
    def _parse(result: RpcResult | None, predefined: bool) -> list[Gem]:
        if result is None:
            return []
        return schema.parse_gem_list(result.json(), predefined=predefined)

    def _store(self, gem: Gem) -> None:
        self.jar = GemJar([g for g in self.jar if g.id != gem.id] + [gem])

    async def create(self, name: str, prompt: str, description: str = "") -> Gem:
        """
        Create a custom gem.

        The id comes from the server's reply; a reply without one is an
        ``API`` error.
        """
        payload = await self._call_one(
            RpcCall.build(RpcId.CREATE_GEM, [gem_fields(name, prompt, description)])
        )
        gem_id = schema.parse_created_gem_id(payload)
        if gem_id is None:
            raise api_error("Gem creation reply did not contain a gem id")

        gem = Gem(id=gem_id, name=name, prompt=prompt, description=description)
        self._store(gem)
        logger.info("Created gem %s (%s)", name, gem_id)
        return gem

    async def update(self, gem: Gem | str, name: str, prompt: str, description: str = "") -> Gem:
        gem_id = _gem_id(gem)
        await self._call_one(
            RpcCall.build(RpcId.UPDATE_GEM, [gem_id, gem_fields(name, prompt, description)])
        )
        updated = Gem(id=gem_id, name=name, prompt=prompt, description=description)
        self._store(updated)
        return updated

    async def delete(self, gem: Gem | str) -> None:
        gem_id = _gem_id(gem)
        await self.client.batch_execute([RpcCall.build(RpcId.DELETE_GEM, [gem_id])])
        self.jar = GemJar(g for g in self.jar if g.id != gem_id)
        logger.info("Deleted gem %s", gem_id)


__all__ = ["GemRegistry", "gem_fields"]
