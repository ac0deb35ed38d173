"""
Append-Only, Tamper-Evident Administration Audit (Hash-Chained).

Every administration attempt that reaches the pipeline -- administered,
blocked or aborted -- leaves exactly one ``AuditEntry`` carrying the full
request, all ten stage verdicts and the final disposition.  Entries are
linked via a SHA-256 hash chain: if any entry is modified after the fact,
``verify_chain()`` detects the inconsistency.

**Audit before effect:**  ``AuditRecorder.record()`` turns any failure of
the underlying store into ``AuditPersistenceFailure``.  An attempt whose
entry could not be persisted must never be reported as administered.

**Scope note:**  ``AuditLog`` is the in-memory audit store.  A production
deployment would back the ``AuditStore`` interface with WORM storage or an
append-only database table.

Administered entries double as the dose history for the interval and
daily-dose checks; see ``AuditLog.administered_history``.
"""

from __future__ import annotations

import hashlib
import json
import logging
import re
import threading
import uuid
from datetime import datetime, timezone
from typing import Any, Optional, Protocol

from pydantic import BaseModel, Field

from medgate.models import (
    AdministrationRequest,
    Decision,
    Disposition,
    Omission,
    VerificationOutcome,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class AuditPersistenceFailure(Exception):
    """The audit entry for an attempt could not be durably written.

    Fatal for the attempt: its result is unverifiable and must be surfaced
    to the caller as failed.
    """

    def __init__(self, attempt_id: str, detail: str) -> None:
        super().__init__(f"Audit entry for attempt {attempt_id} could not be persisted: {detail}")
        self.attempt_id = attempt_id
        self.detail = detail


class DuplicateAttemptError(ValueError):
    """An attempt id is already recorded.

    A caller error, not a storage failure: the recorder lets it through
    unchanged.
    """


# ---------------------------------------------------------------------------
# Audit entry model
# ---------------------------------------------------------------------------

class AuditEntry(BaseModel):
    """A single audit record for one administration attempt."""

    entry_id: str = Field(
        default_factory=lambda: str(uuid.uuid4()),
        description="Unique identifier for this audit entry (UUID).",
    )
    attempt_id: str = Field(..., description="Attempt identifier; exactly one entry per attempt.")
    home_id: str = Field(..., description="Care home -- scopes queries and exports.")
    resident_id: str
    medication_id: str
    prescription_id: str
    staff_id: str = Field(..., description="Staff member who made the attempt.")
    witness_id: Optional[str] = None
    disposition: Disposition
    request: AdministrationRequest
    outcome: VerificationOutcome
    omission: Optional[Omission] = Field(
        default=None,
        description="Refusal or omission code and reason for an ABORTED attempt.",
    )
    recorded_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="UTC timestamp when the entry was written.",
    )
    previous_hash: str = Field(
        default="",
        description=(
            "SHA-256 hash of the previous entry's canonical representation. "
            "Empty string for the first entry in the chain."
        ),
    )

    @classmethod
    def for_attempt(
        cls,
        request: AdministrationRequest,
        outcome: VerificationOutcome,
        disposition: Disposition,
        omission: Optional[Omission] = None,
    ) -> AuditEntry:
        return cls(
            attempt_id=request.attempt_id,
            home_id=request.home_id,
            resident_id=request.resident_id,
            medication_id=request.medication_id,
            prescription_id=request.prescription_id,
            staff_id=request.staff_id,
            witness_id=request.witness_id,
            disposition=disposition,
            request=request,
            outcome=outcome,
            omission=omission,
        )

    def canonical_bytes(self) -> bytes:
        """Return a deterministic byte representation for hashing."""
        data = self.model_dump(mode="json")
        return json.dumps(data, sort_keys=True, default=str).encode("utf-8")

    def compute_hash(self) -> str:
        """Compute the SHA-256 hash of this entry's canonical representation."""
        return hashlib.sha256(self.canonical_bytes()).hexdigest()


# ---------------------------------------------------------------------------
# Store interface
# ---------------------------------------------------------------------------

class AuditStore(Protocol):
    """Durable append-only audit storage consumed by the recorder and loader."""

    def append(self, entry: AuditEntry) -> AuditEntry:
        ...

    def has_attempt(self, attempt_id: str) -> bool:
        ...

    def administered_history(self, resident_id: str, medication_id: str) -> list[AuditEntry]:
        ...


# ---------------------------------------------------------------------------
# PHI redaction
# ---------------------------------------------------------------------------

# Patterns that might appear in free text and should be redacted before export.
_PHI_PATTERNS: dict[str, re.Pattern] = {
    "health_id": re.compile(r"\b\d{3}[- ]?\d{3}[- ]?\d{4}\b"),
    "email": re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Z|a-z]{2,}\b"),
}

# Keys whose values identify the resident and are fully redacted.
_PHI_KEYS = {"full_name", "date_of_birth", "national_health_id", "dob",
             "email", "phone", "address"}


def redact_phi(data: Any) -> Any:
    """Return a copy of ``data`` with resident identifiers redacted.

    Dictionaries are walked recursively; values under identifying keys are
    replaced with ``[REDACTED]`` and identifier-like patterns inside other
    strings are masked.
    """
    if isinstance(data, dict):
        redacted = {}
        for key, value in data.items():
            if key.lower() in _PHI_KEYS and value is not None:
                redacted[key] = "[REDACTED]"
            else:
                redacted[key] = redact_phi(value)
        return redacted
    if isinstance(data, list):
        return [redact_phi(item) for item in data]
    if isinstance(data, str):
        value = data
        for pattern_name, pattern in _PHI_PATTERNS.items():
            value = pattern.sub(f"[REDACTED-{pattern_name.upper()}]", value)
        return value
    return data


# ---------------------------------------------------------------------------
# Audit log (in-memory store)
# ---------------------------------------------------------------------------

class AuditLog:
    """Append-only, tamper-evident audit log with SHA-256 hash chaining.

    * **Append-only writes** -- there are no ``update()`` or ``delete()``
      methods, and entries are copied in and out so callers cannot mutate
      stored records.
    * **One entry per attempt** -- a second append for the same
      ``attempt_id`` raises ``DuplicateAttemptError``.
    * **Thread-safe** -- appends and reads are serialized by an internal
      lock so concurrent attempts see a consistent chain.
    """

    def __init__(self) -> None:
        self._entries: list[AuditEntry] = []
        self._hashes: list[str] = []  # parallel list of computed hashes
        self._attempt_ids: set[str] = set()
        self._lock = threading.Lock()

    def append(self, entry: AuditEntry) -> AuditEntry:
        """Append a new entry, linking it to the previous one.

        Returns:
            A copy of the stored entry with ``previous_hash`` populated.

        Raises:
            DuplicateAttemptError: If the attempt is already recorded.
        """
        with self._lock:
            if entry.attempt_id in self._attempt_ids:
                raise DuplicateAttemptError(
                    f"Attempt {entry.attempt_id} already has an audit entry."
                )
            stored = entry.model_copy(deep=True)
            stored.previous_hash = self._hashes[-1] if self._hashes else ""

            self._entries.append(stored)
            self._hashes.append(stored.compute_hash())
            self._attempt_ids.add(stored.attempt_id)
            return stored.model_copy(deep=True)

    def verify_chain(self) -> tuple[bool, Optional[int]]:
        """Walk the log and validate every hash link.

        Returns:
            ``(valid, broken_at)`` where ``broken_at`` is the index of the
            first broken link, or None if the chain is intact.
        """
        with self._lock:
            for i, entry in enumerate(self._entries):
                if i == 0:
                    if entry.previous_hash != "":
                        return (False, 0)
                elif entry.previous_hash != self._entries[i - 1].compute_hash():
                    return (False, i)

                if self._hashes[i] != entry.compute_hash():
                    return (False, i)

        return (True, None)

    def has_attempt(self, attempt_id: str) -> bool:
        with self._lock:
            return attempt_id in self._attempt_ids

    def get(self, entry_id: str) -> AuditEntry:
        """Return a copy of the entry with ``entry_id``.

        Raises:
            KeyError: If no such entry exists.
        """
        with self._lock:
            for entry in self._entries:
                if entry.entry_id == entry_id:
                    return entry.model_copy(deep=True)
        raise KeyError(f"No audit entry '{entry_id}'")

    def query(
        self,
        home_id: str,
        resident_id: Optional[str] = None,
        medication_id: Optional[str] = None,
        disposition: Optional[Disposition] = None,
        staff_id: Optional[str] = None,
        time_start: Optional[datetime] = None,
        time_end: Optional[datetime] = None,
    ) -> list[AuditEntry]:
        """Query entries for one care home, in insertion order.

        Entries from other homes are never returned.
        """
        results = []
        with self._lock:
            for entry in self._entries:
                if entry.home_id != home_id:
                    continue
                if resident_id is not None and entry.resident_id != resident_id:
                    continue
                if medication_id is not None and entry.medication_id != medication_id:
                    continue
                if disposition is not None and entry.disposition != disposition:
                    continue
                if staff_id is not None and entry.staff_id != staff_id:
                    continue
                if time_start is not None and entry.recorded_at < time_start:
                    continue
                if time_end is not None and entry.recorded_at > time_end:
                    continue
                results.append(entry.model_copy(deep=True))
        return results

    def administered_history(self, resident_id: str, medication_id: str) -> list[AuditEntry]:
        """All ADMINISTERED entries for a resident/medication pair."""
        with self._lock:
            return [
                entry.model_copy(deep=True)
                for entry in self._entries
                if entry.resident_id == resident_id
                and entry.medication_id == medication_id
                and entry.disposition == Disposition.ADMINISTERED
            ]

    def export_for_review(
        self,
        home_id: str,
        time_start: Optional[datetime] = None,
        time_end: Optional[datetime] = None,
    ) -> dict[str, Any]:
        """Produce a JSON-serializable export bundle for inspection.

        Resident identifiers are redacted and the chain verification result
        is included in the bundle.
        """
        entries = self.query(home_id, time_start=time_start, time_end=time_end)
        redacted_entries = [redact_phi(entry.model_dump(mode="json")) for entry in entries]

        chain_valid, broken_at = self.verify_chain()
        by_disposition = {d.value: 0 for d in Disposition}
        for entry in entries:
            by_disposition[entry.disposition.value] += 1

        return {
            "export_metadata": {
                "home_id": home_id,
                "exported_at": datetime.now(timezone.utc).isoformat(),
                "entry_count": len(redacted_entries),
                "dispositions": by_disposition,
                "chain_integrity": "VALID" if chain_valid else f"BROKEN_AT_INDEX_{broken_at}",
                "scope_note": (
                    "This export uses SHA-256 hash chaining for structural tamper "
                    "evidence. Production deployment would use WORM storage or an "
                    "append-only database."
                ),
            },
            "entries": redacted_entries,
        }

    @property
    def length(self) -> int:
        return len(self)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


# ---------------------------------------------------------------------------
# Recorder
# ---------------------------------------------------------------------------

class AuditRecorder:
    """Writes the single audit entry for an attempt to an ``AuditStore``."""

    def __init__(self, store: AuditStore) -> None:
        self._store = store

    def record(
        self,
        request: AdministrationRequest,
        outcome: VerificationOutcome,
        disposition: Disposition,
        omission: Optional[Omission] = None,
    ) -> AuditEntry:
        """Persist the audit entry for one attempt.

        Raises:
            ValueError: If ADMINISTERED is requested for a blocked outcome, or
                omission details accompany a disposition other than ABORTED.
            DuplicateAttemptError: If the attempt already has an entry.
            AuditPersistenceFailure: If the store could not persist the entry.
        """
        if disposition == Disposition.ADMINISTERED and outcome.decision != Decision.PROCEED:
            raise ValueError(
                f"Attempt {request.attempt_id} cannot be recorded as ADMINISTERED: "
                "verification did not proceed."
            )
        if omission is not None and disposition != Disposition.ABORTED:
            raise ValueError(
                f"Attempt {request.attempt_id}: omission details only apply to ABORTED attempts."
            )

        entry = AuditEntry.for_attempt(request, outcome, disposition, omission)
        try:
            return self._store.append(entry)
        except DuplicateAttemptError:
            raise
        except Exception as e:
            logger.error(
                f"Audit persistence failed for attempt {request.attempt_id}: {e}", exc_info=True
            )
            raise AuditPersistenceFailure(request.attempt_id, str(e)) from e
