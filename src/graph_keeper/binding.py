"""One-time binding of a chat principal to a Graph account."""

from __future__ import annotations

import hashlib
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from urllib.parse import parse_qs, urlparse

from .errors import BindLimitError, DuplicateBindingError, FormatError
from .oauth.client import GraphTokenExchanger
from .store import Binding, CredentialStore

logger = logging.getLogger(__name__)


def subject_digest(account_id: str) -> str:
    """Fixed-length digest of the remote account id.

    Raw Graph ids can exceed what chat button payloads accept, so bindings
    carry this 32-character hex digest instead.
    """
    return hashlib.sha256(account_id.encode("utf-8")).hexdigest()[:32]


def parse_bind_input(text: str) -> tuple[str, str]:
    """Split ``"<redirect-url> <alias>"`` into the authorization code and alias.

    Raises:
        FormatError: If there are not exactly two tokens or the URL has no ``code``
    """
    parts = text.split()
    if len(parts) != 2:
        raise FormatError(
            "Expected '<redirect-url> <alias>'",
            details={"tokens": len(parts)},
        )
    url, alias = parts
    codes = parse_qs(urlparse(url).query).get("code")
    if not codes or not codes[0]:
        raise FormatError("Redirect URL has no authorization code", details={"url": url})
    return codes[0], alias


@dataclass
class BindResult:
    """Stored binding plus profile fields for the caller to display."""

    binding: Binding
    user_principal_name: str = ""
    display_name: str = ""

    @property
    def subject_id(self) -> str:
        return self.binding.subject_id


class BindingWorkflow:
    """Validates bind input, exchanges the code and stores the new binding.

    Fails with the first error encountered and writes nothing on failure.
    """

    def __init__(
        self,
        exchanger: GraphTokenExchanger,
        store: CredentialStore,
        max_bindings: int = 0,
        clock: Callable[[], float] = time.time,
    ):
        self.exchanger = exchanger
        self.store = store
        self.max_bindings = max_bindings
        self.clock = clock

    async def bind_count(self, chat_id: int) -> int:
        return len(await self.store.query_by_principal(chat_id))

    async def bind(
        self,
        chat_id: int,
        text: str,
        client_id: str,
        client_secret: str,
    ) -> BindResult:
        """Bind the account behind the redirect URL in ``text`` to ``chat_id``.

        Raises:
            FormatError: Malformed input (no network call is made)
            BindLimitError: Principal already holds ``max_bindings`` bindings
            TokenError: Code exchange rejected
            ProfileFetchError: Profile call failed or carried no id
            DuplicateBindingError: Principal already bound this OAuth app
            PersistenceError: Store write failed
        """
        logger.info("Bind started for chat %s", chat_id)
        code, alias = parse_bind_input(text)

        if self.max_bindings > 0:
            count = await self.bind_count(chat_id)
            if count >= self.max_bindings:
                raise BindLimitError(
                    f"Chat {chat_id} already has {count} bindings",
                    details={"count": count, "limit": self.max_bindings},
                )

        pair = await self.exchanger.exchange_code(code, client_id, client_secret)
        logger.info("Bind for chat %s: token acquired", chat_id)

        profile = await self.exchanger.fetch_profile(pair.access_token)
        subject_id = subject_digest(str(profile["id"]))

        # Same OAuth app, not same account: kept for compatibility with stored data.
        existing = await self.store.query_by_principal(chat_id)
        if any(b.client_id == client_id for b in existing):
            raise DuplicateBindingError(
                f"Chat {chat_id} already bound application {client_id}",
                details={"client_id": client_id},
            )

        binding = await self.store.insert(
            Binding(
                chat_id=chat_id,
                refresh_token=pair.refresh_token,
                subject_id=subject_id,
                alias=alias,
                client_id=client_id,
                client_secret=client_secret,
                last_success_at=int(self.clock()),
            )
        )
        logger.info("Bind for chat %s succeeded: binding %s (%s)", chat_id, binding.id, subject_id)
        return BindResult(
            binding=binding,
            user_principal_name=str(profile.get("userPrincipalName") or ""),
            display_name=str(profile.get("displayName") or ""),
        )
