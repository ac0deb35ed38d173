"""
Data-loading step for one administration attempt.

All I/O happens here, before any stage runs: resident, medication,
prescription and staff snapshots, the interaction lookup and the dose
history.  Each fetch has a timeout.  A fetch that times out, finds nothing
or fails is recorded as an unavailable source with a readable reason; the
stages that need it then block (fail closed).  Nothing is retried here --
retry policy belongs to the caller, via a new attempt.
"""

from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import dataclass
from typing import Any, Callable, Optional

from medgate.audit import AuditStore
from medgate.collaborators import (
    InteractionDatabase,
    MedicationCatalog,
    NotFoundError,
    PrescriptionStore,
    ResidentDirectory,
    StaffDirectory,
)
from medgate.config import VerificationPolicy
from medgate.models import (
    AdministrationRequest,
    MedicationSnapshot,
    PrescriptionSnapshot,
    PriorAdministration,
    ResidentSnapshot,
)
from medgate.stages.base import (
    SOURCE_HISTORY,
    SOURCE_INTERACTIONS,
    SOURCE_LABELS,
    SOURCE_MEDICATION,
    SOURCE_PRESCRIPTION,
    SOURCE_RESIDENT,
    SOURCE_STAFF,
    SOURCE_WITNESS,
    VerificationContext,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LoadedData:
    """Snapshots and context ready to hand to ``pipeline.verify``."""

    resident: Optional[ResidentSnapshot]
    medication: Optional[MedicationSnapshot]
    prescription: Optional[PrescriptionSnapshot]
    context: VerificationContext


class DataLoader:
    """Fetches everything the pipeline needs, with per-fetch timeouts.

    Independent fetches run concurrently on a small thread pool.  The
    interaction lookup depends on the resident's active medication list and
    starts once the resident snapshot has arrived.
    """

    def __init__(
        self,
        residents: ResidentDirectory,
        catalog: MedicationCatalog,
        prescriptions: PrescriptionStore,
        interactions: InteractionDatabase,
        staff: StaffDirectory,
        audit_store: AuditStore,
        max_workers: int = 8,
    ) -> None:
        self._residents = residents
        self._catalog = catalog
        self._prescriptions = prescriptions
        self._interactions = interactions
        self._staff = staff
        self._audit_store = audit_store
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="medgate-fetch")

    def close(self) -> None:
        # Timed-out fetches may still be running; do not wait for them.
        self._executor.shutdown(wait=False)

    def load(
        self,
        request: AdministrationRequest,
        policy: VerificationPolicy,
        timeout: float | None = None,
    ) -> LoadedData:
        """Fetch all data for ``request``.

        Args:
            request: The administration attempt.
            policy: Policy in force; also supplies the default timeout.
            timeout: Per-fetch timeout in seconds, overriding the policy.
        """
        timeout = policy.fetch_timeout_seconds if timeout is None else timeout
        unavailable: dict[str, str] = {}

        futures: dict[str, Future] = {
            SOURCE_RESIDENT: self._submit(self._residents.get_resident_snapshot, request.resident_id),
            SOURCE_MEDICATION: self._submit(self._catalog.get_medication_snapshot, request.medication_id),
            SOURCE_PRESCRIPTION: self._submit(
                self._prescriptions.get_active_prescription, request.resident_id, request.medication_id
            ),
            SOURCE_STAFF: self._submit(self._staff.get_staff_snapshot, request.staff_id),
            SOURCE_HISTORY: self._submit(self._load_history, request.resident_id, request.medication_id),
        }
        if request.witness_id and request.witness_id != request.staff_id:
            futures[SOURCE_WITNESS] = self._submit(self._staff.get_staff_snapshot, request.witness_id)

        resident = self._collect(SOURCE_RESIDENT, futures[SOURCE_RESIDENT], timeout, unavailable, request)

        interactions = None
        if resident is not None:
            future = self._submit(
                self._interactions.check_interactions,
                request.medication_id,
                list(resident.active_medication_ids),
            )
            interactions = self._collect(SOURCE_INTERACTIONS, future, timeout, unavailable, request)
        else:
            unavailable[SOURCE_INTERACTIONS] = "interaction lookup skipped: resident unavailable"

        medication = self._collect(SOURCE_MEDICATION, futures[SOURCE_MEDICATION], timeout, unavailable, request)
        prescription = self._collect(
            SOURCE_PRESCRIPTION, futures[SOURCE_PRESCRIPTION], timeout, unavailable, request
        )
        staff = self._collect(SOURCE_STAFF, futures[SOURCE_STAFF], timeout, unavailable, request)
        history = self._collect(SOURCE_HISTORY, futures[SOURCE_HISTORY], timeout, unavailable, request)
        witness = None
        if SOURCE_WITNESS in futures:
            witness = self._collect(SOURCE_WITNESS, futures[SOURCE_WITNESS], timeout, unavailable, request)

        context = VerificationContext(
            policy=policy,
            interactions=interactions,
            prior_administrations=history,
            staff=staff,
            witness=witness,
            unavailable=unavailable,
        )
        return LoadedData(
            resident=resident,
            medication=medication,
            prescription=prescription,
            context=context,
        )

    # -- helpers --

    def _submit(self, fn: Callable[..., Any], *args: Any) -> Future:
        return self._executor.submit(fn, *args)

    def _collect(
        self,
        source: str,
        future: Future,
        timeout: float,
        unavailable: dict[str, str],
        request: AdministrationRequest,
    ) -> Any:
        label = SOURCE_LABELS[source]
        try:
            return future.result(timeout=timeout)
        except FutureTimeout:
            future.cancel()
            unavailable[source] = f"{label} lookup timed out after {timeout:g}s"
        except NotFoundError:
            unavailable[source] = f"{label} not found"
        except Exception as e:
            logger.warning(
                f"{label} lookup failed for attempt {request.attempt_id}: {e}", exc_info=True
            )
            unavailable[source] = f"{label} lookup failed"

        logger.warning(f"Attempt {request.attempt_id}: {unavailable[source]}")
        return None

    def _load_history(self, resident_id: str, medication_id: str) -> list[PriorAdministration]:
        entries = self._audit_store.administered_history(resident_id, medication_id)
        history = [
            PriorAdministration(
                attempt_id=entry.attempt_id,
                administered_at=entry.request.attempt_timestamp,
                dose=entry.request.claimed_dose,
            )
            for entry in entries
        ]
        history.sort(key=lambda p: p.administered_at)
        return history
