"""Diff-and-apply reconciliation of ingested candidates against the store."""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Dict, Iterable, List

from bsky_topten.collector.results import PassReport, UnitResult
from bsky_topten.errors import StorageError
from bsky_topten.models.records import Account, AccountCandidate, PostCandidate
from bsky_topten.storage.base_store import AccountPostStore

logger = logging.getLogger(__name__)


@dataclass
class ReconciliationStats:
    """Statistics from one reconciliation pass."""
    candidates: int = 0
    inserted: int = 0
    updated: int = 0
    update_failures: int = 0
    unchanged: int = 0
    processing_time_seconds: float = 0.0

    def summary(self) -> str:
        return (
            f"{self.candidates} candidates: {self.inserted} inserted, {self.updated} updated, "
            f"{self.unchanged} unchanged, {self.update_failures} update failures"
        )


@dataclass(frozen=True)
class AccountUpdate:
    """A persisted account whose mutable fields changed upstream."""
    existing: Account
    candidate: AccountCandidate

    @property
    def account_id(self) -> int:
        return self.existing.id


@dataclass
class AccountPlan:
    """Classification of every candidate: insert, update, or no-op."""
    to_insert: List[AccountCandidate] = field(default_factory=list)
    to_update: List[AccountUpdate] = field(default_factory=list)
    unchanged: List[Account] = field(default_factory=list)


def account_differs(existing: Account, candidate: AccountCandidate) -> bool:
    return (
        existing.handle != candidate["handle"]
        or existing.display_name != candidate.get("display_name")
    )


class AccountReconciler:
    """Reconciles ingested account candidates against persisted accounts, keyed by DID."""

    def __init__(self, store: AccountPostStore, update_concurrency: int = 4):
        """
        Args:
            store: Storage collaborator
            update_concurrency: Maximum account updates written at the same time
        """
        if update_concurrency <= 0:
            raise ValueError("update_concurrency must be greater than 0")
        self.store = store
        self.update_concurrency = update_concurrency

    @staticmethod
    def plan(candidates: Iterable[AccountCandidate], existing: Iterable[Account]) -> AccountPlan:
        """
        Classify candidates against persisted accounts.

        A DID seen more than once in ``candidates`` is planned once, using its
        last occurrence.

        Args:
            candidates: Freshly ingested accounts
            existing: Persisted accounts matching the candidates' DIDs

        Returns:
            The reconciliation plan
        """
        existing_by_did: Dict[str, Account] = {account.did: account for account in existing}
        latest: Dict[str, AccountCandidate] = {}
        for candidate in candidates:
            latest[candidate["did"]] = candidate

        plan = AccountPlan()
        for did, candidate in latest.items():
            current = existing_by_did.get(did)
            if current is None:
                plan.to_insert.append(candidate)
            elif account_differs(current, candidate):
                plan.to_update.append(AccountUpdate(existing=current, candidate=candidate))
            else:
                plan.unchanged.append(current)

        return plan

    async def _apply_update(self, semaphore: asyncio.Semaphore, change: AccountUpdate) -> UnitResult[int]:
        async with semaphore:
            try:
                await asyncio.to_thread(
                    self.store.update_account,
                    change.account_id,
                    change.candidate["handle"],
                    change.candidate.get("display_name"),
                )
            except StorageError as e:
                logger.error(f"Failed to update account {change.existing.did} (id={change.account_id}): {e}")
                return UnitResult.failure(change.existing.did, e)
        return UnitResult.success(change.existing.did, change.account_id)

    async def apply(self, plan: AccountPlan) -> PassReport[int]:
        """
        Write the plan: all updates first, concurrently, then one batch insert.

        Update failures are collected in the report. A batch insert failure
        rolls back the whole batch and propagates.

        Returns:
            Report of the individual updates

        Raises:
            StorageError: If the batch insert fails
        """
        report: PassReport[int] = PassReport("account updates")

        if plan.to_update:
            semaphore = asyncio.Semaphore(self.update_concurrency)
            results = await asyncio.gather(
                *(self._apply_update(semaphore, change) for change in plan.to_update)
            )
            report.extend(list(results))

        if plan.to_insert:
            await asyncio.to_thread(self.store.insert_accounts, plan.to_insert)

        return report

    async def reconcile(self, candidates: List[AccountCandidate]) -> ReconciliationStats:
        """
        Look up, classify and apply a full candidate set.

        Args:
            candidates: Every account ingested in this pass

        Returns:
            Statistics for the pass

        Raises:
            StorageError: If the lookup or the batch insert fails
        """
        start = time.monotonic()
        stats = ReconciliationStats(candidates=len(candidates))

        existing = await asyncio.to_thread(
            self.store.find_accounts_by_did, [c["did"] for c in candidates]
        )
        plan = self.plan(candidates, existing)
        logger.info(
            f"Account plan: {len(plan.to_insert)} to insert, {len(plan.to_update)} to update, "
            f"{len(plan.unchanged)} unchanged"
        )

        report = await self.apply(plan)

        stats.inserted = len(plan.to_insert)
        stats.updated = len(report.succeeded)
        stats.update_failures = len(report.failed)
        stats.unchanged = len(plan.unchanged)
        stats.processing_time_seconds = time.monotonic() - start
        return stats


class PostReconciler:
    """
    Stores scored posts.

    Every admitted post is a new fact for the current working set, so there
    is no lookup: the whole pass is inserted in one batch.
    """

    def __init__(self, store: AccountPostStore):
        self.store = store

    async def reconcile(self, candidates: List[PostCandidate]) -> ReconciliationStats:
        """
        Raises:
            StorageError: If the batch insert fails
        """
        start = time.monotonic()
        inserted = await asyncio.to_thread(self.store.insert_posts, candidates) if candidates else 0
        return ReconciliationStats(
            candidates=len(candidates),
            inserted=inserted,
            processing_time_seconds=time.monotonic() - start,
        )
