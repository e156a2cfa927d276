"""Pairing state: pending nickname registrations and confirmed chat bindings.

Pending entries live under ``nickmap:<scope>:<nickname>`` and are created by
the device before the operator confirms with ``/register <nickname>``.
Confirmed entries live under ``fcm:<scope>:<chat_id>`` and drive dispatch.
Both hold a JSON list of endpoint tokens. No method raises for missing
state; absent keys read as empty lists.
"""

from __future__ import annotations

import enum
import json
import logging
from typing import Iterable, Optional

from .kv_store import KeyValueStore
from .locks import KeyedLocks
from .logging_utils import log_event

PENDING_PREFIX = "nickmap"
CONFIRMED_PREFIX = "fcm"


class PairingOutcome(str, enum.Enum):
    MERGED = "merged"
    ALREADY_PAIRED = "already_paired"
    NO_DEVICE = "no_device"


def pending_key(scope: str, nickname: str) -> str:
    return f"{PENDING_PREFIX}:{scope}:{nickname}"


def confirmed_key(scope: str, chat_id: str) -> str:
    return f"{CONFIRMED_PREFIX}:{scope}:{chat_id}"


def decode_tokens(raw: Optional[str]) -> list[str]:
    if not raw:
        return []
    try:
        data = json.loads(raw)
    except (TypeError, ValueError):
        return []
    if not isinstance(data, list):
        return []
    return _unique(item for item in data if isinstance(item, str) and item)


def encode_tokens(tokens: Iterable[str]) -> str:
    return json.dumps(list(tokens), separators=(",", ":"))


def _unique(tokens: Iterable[str]) -> list[str]:
    seen: set[str] = set()
    ordered: list[str] = []
    for token in tokens:
        if token in seen:
            continue
        seen.add(token)
        ordered.append(token)
    return ordered


def token_hint(token: str) -> str:
    """Short, log-safe suffix of an endpoint token."""
    return f"...{token[-6:]}" if len(token) > 6 else "..."


class RegistrationDirectory:
    def __init__(
        self,
        store: KeyValueStore,
        *,
        locks: Optional[KeyedLocks] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._store = store
        self._locks = locks or KeyedLocks()
        self._logger = logger or logging.getLogger(__name__)

    async def begin_pairing(self, scope: str, nickname: str, token: str) -> bool:
        """Add ``token`` to the pending list for ``nickname``; False if present."""
        key = pending_key(scope, nickname)
        async with self._locks.hold(key):
            tokens = decode_tokens(await self._store.get(key))
            if token in tokens:
                return False
            tokens.append(token)
            await self._store.put(key, encode_tokens(tokens))
        log_event(
            self._logger,
            logging.INFO,
            "registration.pending.added",
            nickname=nickname,
            token_hint=token_hint(token),
            pending=len(tokens),
        )
        return True

    async def register_or_update_endpoint(
        self, scope: str, nickname: str, token: str
    ) -> bool:
        """Entry point for the one-shot HTTP registration call.

        Idempotent: repeating the call with the same token changes nothing.
        Returns False when any field is blank.
        """
        scope, nickname, token = scope.strip(), nickname.strip(), token.strip()
        if not scope or not nickname or not token:
            return False
        await self.begin_pairing(scope, nickname, token)
        return True

    async def confirm_pairing(
        self, scope: str, nickname: str, chat_id: str
    ) -> PairingOutcome:
        chat_key = confirmed_key(scope, chat_id)
        nick_key = pending_key(scope, nickname)
        async with self._locks.hold(chat_key), self._locks.hold(nick_key):
            existing = decode_tokens(await self._store.get(chat_key))
            pending = decode_tokens(await self._store.get(nick_key))
            merged = _unique([*existing, *pending])
            await self._store.delete(nick_key)
            if not merged:
                outcome = PairingOutcome.NO_DEVICE
            elif merged != existing:
                await self._store.put(chat_key, encode_tokens(merged))
                outcome = PairingOutcome.MERGED
            else:
                outcome = PairingOutcome.ALREADY_PAIRED
        log_event(
            self._logger,
            logging.INFO,
            "registration.confirm",
            nickname=nickname,
            chat_id=chat_id,
            outcome=outcome.value,
            tokens=len(merged),
        )
        return outcome

    async def tokens_for(self, scope: str, chat_id: str) -> list[str]:
        return decode_tokens(await self._store.get(confirmed_key(scope, chat_id)))

    async def pending_tokens(self, scope: str, nickname: str) -> list[str]:
        return decode_tokens(await self._store.get(pending_key(scope, nickname)))

    async def evict_token(self, scope: str, chat_id: str, token: str) -> None:
        """Drop a dead endpoint from the chat binding and every pending entry."""
        chat_key = confirmed_key(scope, chat_id)
        async with self._locks.hold(chat_key):
            await self._remove_token(chat_key, token)
        # TODO: index pending entries by token; this listing is unbounded.
        pending_keys = await self._store.list_keys(f"{PENDING_PREFIX}:{scope}:")
        for nick_key in pending_keys:
            async with self._locks.hold(nick_key):
                await self._remove_token(nick_key, token)
        log_event(
            self._logger,
            logging.INFO,
            "registration.token.evicted",
            chat_id=chat_id,
            token_hint=token_hint(token),
            pending_scanned=len(pending_keys),
        )

    async def _remove_token(self, key: str, token: str) -> None:
        raw = await self._store.get(key)
        if raw is None:
            return
        tokens = decode_tokens(raw)
        remaining = [item for item in tokens if item != token]
        if not remaining:
            await self._store.delete(key)
        elif remaining != tokens:
            await self._store.put(key, encode_tokens(remaining))
