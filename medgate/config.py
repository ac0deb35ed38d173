"""
Care Home Verification Policy -- Per-Home Configuration for MedGate.

Every care home deploying the verification pipeline defines its own tolerance
for timing deviation, its look-alike/sound-alike sensitivity, which
prescriber roles it accepts, and the timeouts it applies to external lookups.
This module encodes those choices as validated policy objects so that the
same rules are enforced on every administration attempt in that home.

The aggregate confidence threshold and the timing window are configured
constants rather than derived values.  The defaults below are conservative;
a home should define its own policy for production use.
"""

from __future__ import annotations

import copy
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, field_validator


# ---------------------------------------------------------------------------
# Threshold model
# ---------------------------------------------------------------------------

class VerificationThresholds(BaseModel):
    """Numeric thresholds consumed by the stage verifiers."""

    min_identifiers: int = Field(
        default=2,
        ge=1,
        description=(
            "Number of independent resident identifiers (national health id, "
            "date of birth, full name) that must corroborate the record."
        ),
    )
    lasa_warn_similarity: float = Field(
        default=0.8,
        ge=0,
        le=1,
        description=(
            "Name similarity at or above which a look-alike/sound-alike "
            "partner raises a warning."
        ),
    )
    lasa_block_similarity: float = Field(
        default=0.9,
        ge=0,
        le=1,
        description=(
            "Name similarity at or above which a look-alike/sound-alike "
            "partner blocks unless the barcode was verified."
        ),
    )
    timing_window_minutes: int = Field(
        default=30,
        ge=0,
        description="Allowed deviation either side of the scheduled time before a warning.",
    )
    min_interval_ratio: float = Field(
        default=0.5,
        gt=0,
        le=1,
        description=(
            "Fraction of the prescribed frequency used as the minimum "
            "inter-dose interval when the prescription does not state one."
        ),
    )
    max_unmanaged_major_interactions: int = Field(
        default=0,
        ge=0,
        description="Major interactions without a documented management strategy tolerated before blocking.",
    )
    confidence_threshold: float = Field(
        default=0.95,
        ge=0,
        le=1,
        description="Minimum aggregate confidence score for the final stage to pass.",
    )

    @field_validator("lasa_block_similarity")
    @classmethod
    def block_above_warn(cls, v: float, info) -> float:
        warn = info.data.get("lasa_warn_similarity")
        if warn is not None and v < warn:
            raise ValueError(
                f"lasa_block_similarity ({v}) must be >= lasa_warn_similarity ({warn})"
            )
        return v


# ---------------------------------------------------------------------------
# Home policy model
# ---------------------------------------------------------------------------

class VerificationPolicy(BaseModel):
    """Complete verification policy for a single care home."""

    home_id: str = Field(
        ...,
        min_length=1,
        description="Unique identifier of the care home; the registry and audit queries are keyed by it.",
    )
    home_name: str = Field(..., min_length=1)
    thresholds: VerificationThresholds = Field(default_factory=VerificationThresholds)
    confidence_gate: str = Field(
        default="block",
        description=(
            "What the final stage does when the confidence score is below "
            "threshold but no stage blocked: 'block' or 'warn'."
        ),
    )
    authorized_prescriber_roles: list[str] = Field(
        default_factory=lambda: [
            "gp",
            "consultant",
            "independent_prescriber",
            "nurse_prescriber",
            "pharmacist_prescriber",
        ],
        description="Prescriber roles whose prescriptions may be administered.",
    )
    controlled_prescriber_roles: list[str] = Field(
        default_factory=lambda: ["gp", "consultant", "independent_prescriber"],
        description="Prescriber roles allowed to prescribe controlled drugs.",
    )
    fetch_timeout_seconds: float = Field(
        default=5.0,
        gt=0,
        description="Timeout applied to each external snapshot or interaction lookup.",
    )
    lock_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Bounded wait for the per resident/medication administration lock.",
    )

    @field_validator("confidence_gate")
    @classmethod
    def validate_confidence_gate(cls, v: str) -> str:
        allowed = {"block", "warn"}
        if v not in allowed:
            raise ValueError(f"confidence_gate must be one of {allowed}, got '{v}'")
        return v

    @field_validator("authorized_prescriber_roles", "controlled_prescriber_roles")
    @classmethod
    def normalize_roles(cls, v: list[str]) -> list[str]:
        return [role.strip().lower() for role in v]


# ---------------------------------------------------------------------------
# Default policy
# ---------------------------------------------------------------------------

DEFAULT_POLICY = VerificationPolicy(
    home_id="default",
    home_name="Default Policy (Conservative Defaults)",
    thresholds=VerificationThresholds(),
    confidence_gate="block",
)
"""Built-in policy used when no home-specific policy is registered."""


# ---------------------------------------------------------------------------
# Policy registry
# ---------------------------------------------------------------------------

class PolicyRegistry:
    """In-memory registry of verification policies keyed by ``home_id``.

    Policies are stored and returned as deep copies so that a caller
    mutating its copy cannot change the policy applied to other attempts.
    """

    def __init__(self) -> None:
        self._policies: dict[str, VerificationPolicy] = {}

    def register(self, policy: VerificationPolicy) -> None:
        """Register a new home policy.

        Raises:
            ValueError: If ``home_id`` is already registered.
        """
        if policy.home_id in self._policies:
            raise ValueError(
                f"Policy for home_id '{policy.home_id}' already registered. "
                "Use update() to modify an existing policy."
            )
        self._policies[policy.home_id] = copy.deepcopy(policy)

    def get(self, home_id: str) -> VerificationPolicy:
        """Retrieve the policy for a home.

        Raises:
            KeyError: If no policy is registered for ``home_id``.
        """
        if home_id not in self._policies:
            raise KeyError(f"No policy registered for home_id '{home_id}'")
        return copy.deepcopy(self._policies[home_id])

    def update(self, policy: VerificationPolicy) -> None:
        """Replace an existing home policy.

        Raises:
            KeyError: If no policy is registered for the given ``home_id``.
        """
        if policy.home_id not in self._policies:
            raise KeyError(
                f"Cannot update: no policy registered for home_id '{policy.home_id}'"
            )
        self._policies[policy.home_id] = copy.deepcopy(policy)

    def list_homes(self) -> list[str]:
        return sorted(self._policies.keys())

    def __len__(self) -> int:
        return len(self._policies)

    def __contains__(self, home_id: str) -> bool:
        return home_id in self._policies


# ---------------------------------------------------------------------------
# YAML loader
# ---------------------------------------------------------------------------

def load_policies_from_yaml(path: str | Path) -> list[VerificationPolicy]:
    """Load home policies from a YAML file.

    The file must contain a top-level ``policies`` key with a list of
    policy objects::

        policies:
          - home_id: "oakfield"
            home_name: "Oakfield House"
            thresholds:
              timing_window_minutes: 45
            confidence_gate: "warn"

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the YAML structure is invalid.
        pydantic.ValidationError: If any policy fails validation.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Policy file not found: {path}")

    with open(path, "r") as f:
        raw = yaml.safe_load(f)

    if not isinstance(raw, dict) or "policies" not in raw:
        raise ValueError(
            "YAML file must contain a top-level 'policies' key with a list of policy objects."
        )

    policies_data = raw["policies"]
    if not isinstance(policies_data, list):
        raise ValueError("'policies' must be a list of policy objects.")

    policies: list[VerificationPolicy] = []
    for idx, entry in enumerate(policies_data):
        if not isinstance(entry, dict):
            raise ValueError(f"Policy entry at index {idx} must be a mapping.")
        policies.append(VerificationPolicy(**entry))

    return policies
