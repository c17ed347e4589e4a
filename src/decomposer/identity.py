"""Who is running the decomposition.

The materialization engine asks an :class:`IdentityProvider` for the current
actor once per run; the ``creator`` assignment behavior assigns to it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from decomposer.cache import TtlCache
from decomposer.core import read_config
from decomposer.types.core import UserRecord
from decomposer.validation import sanitize_actor

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Identity:
    """A user as the store knows them."""

    name: str
    display_name: str = ""
    email: str = ""

    @property
    def label(self) -> str:
        return self.display_name or self.name

    def to_dict(self) -> UserRecord:
        return {"name": self.name, "display_name": self.display_name, "email": self.email}


class IdentityProvider(Protocol):
    def current_actor(self) -> Identity: ...


class StaticIdentityProvider:
    """Always answers with the same identity (CLI ``--actor``, tests)."""

    def __init__(self, identity: Identity | str) -> None:
        if isinstance(identity, str):
            cleaned, err = sanitize_actor(identity)
            if err:
                raise ValueError(err)
            identity = Identity(name=cleaned)
        self._identity = identity

    def current_actor(self) -> Identity:
        return self._identity


class ConfigIdentityProvider:
    """Resolve an actor name against the ``users`` list in config.json.

    The user list is read through a :class:`TtlCache` so repeated runs in a
    long-lived process (the API server) do not re-read the file each time.
    Unknown names still resolve, to a bare :class:`Identity`.
    """

    def __init__(self, decomposer_dir: Path, actor: str, *, cache: TtlCache[dict[str, Identity]] | None = None) -> None:
        cleaned, err = sanitize_actor(actor)
        if err:
            raise ValueError(err)
        self.decomposer_dir = decomposer_dir
        self.actor = cleaned
        self._cache: TtlCache[dict[str, Identity]] = cache if cache is not None else TtlCache()

    def _load_users(self) -> dict[str, Identity]:
        users: dict[str, Identity] = {}
        for record in read_config(self.decomposer_dir).get("users", []):
            if not isinstance(record, dict) or not isinstance(record.get("name"), str):
                logger.warning("Skipping malformed user record in config: %r", record)
                continue
            users[record["name"]] = Identity(
                name=record["name"],
                display_name=record.get("display_name", ""),
                email=record.get("email", ""),
            )
        return users

    def current_actor(self) -> Identity:
        users = self._cache.get_or_load(self._load_users)
        return users.get(self.actor, Identity(name=self.actor))
