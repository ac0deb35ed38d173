"""
Administration Service -- the library's entry point.

``AdministrationService.attempt_administration`` runs one attempt end to
end:

    cancel check -> lock -> load data -> verify -> disposition -> audit -> result

**Guarantees:**

* An attempt cancelled before the lock is acquired leaves no audit entry.
* Once the lock is held the attempt runs to completion and its audit entry
  is written before the lock is released, so the next attempt for the same
  resident/medication sees it in the dose history.
* ADMINISTERED is returned only for a PROCEED outcome whose audit entry was
  persisted.  ``AuditPersistenceFailure``, ``DuplicateAttemptError`` and
  ``LockTimeout`` propagate to the caller; every other problem is captured
  as a stage verdict.
* A dose that verified but was not given is recorded as ABORTED together
  with its omission code and reason.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Optional, Union

from medgate.audit import AuditRecorder, AuditStore, DuplicateAttemptError
from medgate.collaborators import (
    InteractionDatabase,
    MedicationCatalog,
    PrescriptionStore,
    ResidentDirectory,
    StaffDirectory,
)
from medgate.config import DEFAULT_POLICY, PolicyRegistry, VerificationPolicy
from medgate.loader import DataLoader
from medgate.locking import AdministrationLockManager, LockTimeout
from medgate.models import (
    AdministrationRequest,
    AdministrationResult,
    Decision,
    Disposition,
    Omission,
    OmissionCode,
    VerificationOutcome,
)
from medgate.pipeline import verify

logger = logging.getLogger(__name__)

# True to administer, False for a plain refusal, or an Omission with details.
Confirmation = Callable[[VerificationOutcome], Union[bool, Omission]]


class AttemptCancelled(Exception):
    """The caller cancelled the attempt before the lock was acquired."""

    def __init__(self, attempt_id: str) -> None:
        super().__init__(f"Attempt {attempt_id} cancelled before verification started")
        self.attempt_id = attempt_id


class AdministrationService:
    """Verifies and audits medication administration attempts."""

    def __init__(
        self,
        residents: ResidentDirectory,
        catalog: MedicationCatalog,
        prescriptions: PrescriptionStore,
        interactions: InteractionDatabase,
        staff: StaffDirectory,
        audit_store: AuditStore,
        *,
        policy: VerificationPolicy = DEFAULT_POLICY,
        policy_registry: PolicyRegistry | None = None,
        lock_manager: AdministrationLockManager | None = None,
        max_fetch_workers: int = 8,
    ) -> None:
        self._default_policy = policy
        self._registry = policy_registry
        if lock_manager is None:
            lock_manager = AdministrationLockManager(policy.lock_timeout_seconds)
        self._locks = lock_manager
        self._audit_store = audit_store
        self._recorder = AuditRecorder(audit_store)
        self._loader = DataLoader(
            residents,
            catalog,
            prescriptions,
            interactions,
            staff,
            audit_store,
            max_workers=max_fetch_workers,
        )

    def close(self) -> None:
        self._loader.close()

    def policy_for(self, home_id: str) -> VerificationPolicy:
        """Policy registered for ``home_id``, else the service default."""
        if self._registry is not None and home_id in self._registry:
            return self._registry.get(home_id)
        return self._default_policy

    def attempt_administration(
        self,
        request: AdministrationRequest,
        cancel: Optional[threading.Event] = None,
        confirm: Optional[Confirmation] = None,
        fetch_timeout: Optional[float] = None,
    ) -> AdministrationResult:
        """Verify one attempt and record its audit entry.

        Args:
            request: The administration attempt.
            cancel: Checked before the lock is taken; if set, the attempt is
                abandoned with no audit entry.
            confirm: Called with a PROCEED outcome while the lock is held.
                Returning False records the attempt as ABORTED with a
                refusal omission; returning an ``Omission`` records it as
                ABORTED with that code and reason.
            fetch_timeout: Per-fetch timeout in seconds; defaults to the
                policy's ``fetch_timeout_seconds``.

        Returns:
            The ``AdministrationResult`` with the audit entry id.

        Raises:
            AttemptCancelled: If ``cancel`` was set before lock acquisition.
            DuplicateAttemptError: If ``request.attempt_id`` is already recorded.
            LockTimeout: If the per-key lock could not be acquired (retryable).
            AuditPersistenceFailure: If the audit entry could not be written;
                the attempt must be treated as failed and unverifiable.
        """
        policy = self.policy_for(request.home_id)

        if cancel is not None and cancel.is_set():
            logger.info(f"Attempt {request.attempt_id} cancelled before lock acquisition")
            raise AttemptCancelled(request.attempt_id)

        try:
            with self._locks.hold(
                request.resident_id,
                request.medication_id,
                timeout=policy.lock_timeout_seconds,
            ):
                return self._run_locked(request, policy, confirm, fetch_timeout)
        except LockTimeout:
            logger.warning(f"Attempt {request.attempt_id} not started: administration lock busy")
            raise

    def _run_locked(
        self,
        request: AdministrationRequest,
        policy: VerificationPolicy,
        confirm: Optional[Confirmation],
        fetch_timeout: Optional[float],
    ) -> AdministrationResult:
        if self._audit_store.has_attempt(request.attempt_id):
            logger.warning(f"Attempt {request.attempt_id} rejected: attempt id already recorded")
            raise DuplicateAttemptError(f"Attempt {request.attempt_id} already has an audit entry.")

        data = self._loader.load(request, policy, timeout=fetch_timeout)
        outcome = verify(request, data.resident, data.medication, data.prescription, data.context)

        if outcome.decision == Decision.BLOCKED:
            entry = self._recorder.record(request, outcome, Disposition.BLOCKED)
            logger.warning(
                f"Attempt {request.attempt_id} BLOCKED for resident {request.resident_id}: "
                + "; ".join(f"{v.stage.value}: {v.reason}" for v in outcome.blocking_verdicts)
            )
            return self._result(request, outcome, Disposition.BLOCKED, entry.entry_id)

        disposition = Disposition.ADMINISTERED
        omission: Optional[Omission] = None
        if confirm is not None:
            try:
                confirmed = confirm(outcome)
            except Exception as e:
                logger.error(
                    f"Confirmation callback failed for attempt {request.attempt_id}; recording ABORTED",
                    exc_info=True,
                )
                failed = Omission(code=OmissionCode.OTHER, reason=f"confirmation failed: {e}")
                self._recorder.record(request, outcome, Disposition.ABORTED, failed)
                raise
            if isinstance(confirmed, Omission):
                disposition, omission = Disposition.ABORTED, confirmed
            elif not confirmed:
                disposition, omission = Disposition.ABORTED, Omission(reason="resident refused")

        entry = self._recorder.record(request, outcome, disposition, omission)
        logger.info(
            f"Attempt {request.attempt_id} {disposition.value}: resident {request.resident_id}, "
            f"medication {request.medication_id}, confidence {outcome.confidence_score:.3f}"
        )
        return self._result(request, outcome, disposition, entry.entry_id, omission)

    @staticmethod
    def _result(
        request: AdministrationRequest,
        outcome: VerificationOutcome,
        disposition: Disposition,
        entry_id: str,
        omission: Optional[Omission] = None,
    ) -> AdministrationResult:
        return AdministrationResult(
            attempt_id=request.attempt_id,
            disposition=disposition,
            outcome=outcome,
            audit_entry_id=entry_id,
            omission=omission,
        )
