"""Renewal cycle: refresh, probe and re-persist every stored binding."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field

from .errors import KeeperError, PersistenceError
from .oauth.client import GraphTokenExchanger
from .store import Binding, CredentialStore

logger = logging.getLogger(__name__)

STAGE_REFRESH = "refresh"
STAGE_PROBE = "probe"
STAGE_PERSIST = "persist"
STAGE_DONE = "done"
STAGE_UNKNOWN = "unknown"


@dataclass
class RenewalOutcome:
    """Result of renewing one binding."""

    binding_id: int | None
    chat_id: int
    subject_id: str
    ok: bool
    stage: str = STAGE_DONE  # where processing stopped
    kind: str | None = None  # error kind when not ok
    detail: str = ""
    rotated_token_saved: bool = False


@dataclass
class RenewalReport:
    started_at: float
    finished_at: float = 0.0
    outcomes: list[RenewalOutcome] = field(default_factory=list)

    @property
    def succeeded(self) -> list[RenewalOutcome]:
        return [o for o in self.outcomes if o.ok]

    @property
    def failed(self) -> list[RenewalOutcome]:
        return [o for o in self.outcomes if not o.ok]

    @property
    def total(self) -> int:
        return len(self.outcomes)


class RenewalScheduler:
    """Runs one renewal pass per external trigger.

    Bindings are processed one at a time. A failure is recorded for that
    binding and the pass moves on; stored state only changes on success.
    """

    def __init__(
        self,
        exchanger: GraphTokenExchanger,
        store: CredentialStore,
        persist_rotated_on_probe_failure: bool = False,
        clock: Callable[[], float] = time.time,
    ):
        self.exchanger = exchanger
        self.store = store
        self.persist_rotated_on_probe_failure = persist_rotated_on_probe_failure
        self.clock = clock

    async def run_cycle(self) -> RenewalReport:
        report = RenewalReport(started_at=self.clock())
        bindings = await self.store.query_all()
        logger.info("Renewal cycle started: %d bindings", len(bindings))

        for binding in bindings:
            try:
                outcome = await self.renew(binding)
            except Exception as exc:
                logger.exception("Renewal of binding %s failed unexpectedly", binding.id)
                outcome = _failure(binding, STAGE_UNKNOWN, "unexpected", str(exc))
            report.outcomes.append(outcome)

        report.finished_at = self.clock()
        logger.info(
            "Renewal cycle finished: %d ok, %d failed",
            len(report.succeeded),
            len(report.failed),
        )
        return report

    async def renew(self, binding: Binding) -> RenewalOutcome:
        """Refresh, probe and persist a single binding."""
        try:
            pair = await self.exchanger.exchange_refresh(
                binding.refresh_token, binding.client_id, binding.client_secret
            )
        except KeeperError as e:
            logger.warning("Binding %s (%s): refresh failed: %s", binding.id, binding.subject_id, e)
            return _failure(binding, STAGE_REFRESH, e.kind, str(e))

        try:
            await self.exchanger.probe_mailbox(pair.access_token)
        except KeeperError as e:
            logger.warning("Binding %s (%s): mailbox probe failed: %s", binding.id, binding.subject_id, e)
            outcome = _failure(binding, STAGE_PROBE, e.kind, str(e))
            if self.persist_rotated_on_probe_failure:
                outcome.rotated_token_saved = await self._save_rotated_only(binding, pair.refresh_token)
            return outcome

        try:
            await self.store.update(binding.with_renewal(pair.refresh_token, int(self.clock())))
        except PersistenceError as e:
            logger.warning("Binding %s (%s): update failed: %s", binding.id, binding.subject_id, e)
            return _failure(binding, STAGE_PERSIST, e.kind, str(e))

        logger.info("Binding %s (%s) renewed", binding.id, binding.subject_id)
        return RenewalOutcome(
            binding_id=binding.id,
            chat_id=binding.chat_id,
            subject_id=binding.subject_id,
            ok=True,
            rotated_token_saved=True,
        )

    async def _save_rotated_only(self, binding: Binding, refresh_token: str) -> bool:
        try:
            await self.store.update(binding.with_renewal(refresh_token, binding.last_success_at))
        except PersistenceError as e:
            logger.warning("Binding %s: could not keep rotated token: %s", binding.id, e)
            return False
        return True


def _failure(binding: Binding, stage: str, kind: str, detail: str) -> RenewalOutcome:
    return RenewalOutcome(
        binding_id=binding.id,
        chat_id=binding.chat_id,
        subject_id=binding.subject_id,
        ok=False,
        stage=stage,
        kind=kind,
        detail=detail,
    )
