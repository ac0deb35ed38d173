"""
Tests for medgate.config -- Care Home Verification Policy.

Covers: default policy values, policy validation, LASA threshold ordering,
per-home registry isolation, deep-copy semantics, and YAML loading
including the bundled example file.
"""

from pathlib import Path

import pytest
import yaml

from medgate.config import (
    DEFAULT_POLICY,
    PolicyRegistry,
    VerificationPolicy,
    VerificationThresholds,
    load_policies_from_yaml,
)


# ---------------------------------------------------------------------------
# 1. Default policy
# ---------------------------------------------------------------------------

class TestDefaultPolicy:
    def test_default_policy_has_conservative_thresholds(self):
        assert DEFAULT_POLICY.home_id == "default"
        assert DEFAULT_POLICY.confidence_gate == "block"
        assert DEFAULT_POLICY.thresholds.confidence_threshold == 0.95
        assert DEFAULT_POLICY.thresholds.timing_window_minutes == 30
        assert DEFAULT_POLICY.thresholds.min_identifiers == 2
        assert DEFAULT_POLICY.thresholds.max_unmanaged_major_interactions == 0

    def test_default_prescriber_roles(self):
        assert "gp" in DEFAULT_POLICY.authorized_prescriber_roles
        assert "nurse_prescriber" in DEFAULT_POLICY.authorized_prescriber_roles
        assert "nurse_prescriber" not in DEFAULT_POLICY.controlled_prescriber_roles


# ---------------------------------------------------------------------------
# 2. Policy validation
# ---------------------------------------------------------------------------

class TestVerificationPolicyValidation:
    def test_valid_policy_creation(self):
        policy = VerificationPolicy(home_id="oakfield", home_name="Oakfield House", fetch_timeout_seconds=2)
        assert policy.home_id == "oakfield"
        assert policy.fetch_timeout_seconds == 2

    def test_empty_home_id_rejected(self):
        with pytest.raises(Exception):
            VerificationPolicy(home_id="", home_name="Bad Home")

    def test_invalid_confidence_gate_rejected(self):
        with pytest.raises(Exception):
            VerificationPolicy(home_id="h", home_name="H", confidence_gate="ignore")

    def test_timeouts_must_be_positive(self):
        with pytest.raises(Exception):
            VerificationPolicy(home_id="h", home_name="H", lock_timeout_seconds=0)

    def test_prescriber_roles_normalised(self):
        policy = VerificationPolicy(home_id="h", home_name="H", authorized_prescriber_roles=[" GP ", "Consultant"])
        assert policy.authorized_prescriber_roles == ["gp", "consultant"]


# ---------------------------------------------------------------------------
# 3. Threshold ordering
# ---------------------------------------------------------------------------

class TestVerificationThresholds:
    def test_valid_lasa_thresholds(self):
        t = VerificationThresholds(lasa_warn_similarity=0.7, lasa_block_similarity=0.85)
        assert t.lasa_warn_similarity < t.lasa_block_similarity

    def test_block_below_warn_rejected(self):
        with pytest.raises(Exception):
            VerificationThresholds(lasa_warn_similarity=0.9, lasa_block_similarity=0.8)

    def test_confidence_threshold_bounded(self):
        with pytest.raises(Exception):
            VerificationThresholds(confidence_threshold=1.5)


# ---------------------------------------------------------------------------
# 4. Policy registry -- per-home isolation
# ---------------------------------------------------------------------------

class TestPolicyRegistry:
    def test_register_and_retrieve(self):
        registry = PolicyRegistry()
        registry.register(VerificationPolicy(home_id="home_a", home_name="Home A"))
        retrieved = registry.get("home_a")
        assert retrieved.home_name == "Home A"
        assert "home_a" in registry
        assert len(registry) == 1

    def test_duplicate_registration_rejected(self):
        registry = PolicyRegistry()
        policy = VerificationPolicy(home_id="home_a", home_name="Home A")
        registry.register(policy)
        with pytest.raises(ValueError, match="already registered"):
            registry.register(policy)

    def test_get_nonexistent_home_raises_key_error(self):
        with pytest.raises(KeyError):
            PolicyRegistry().get("nonexistent")

    def test_homes_isolated(self):
        registry = PolicyRegistry()
        registry.register(VerificationPolicy(
            home_id="home_a", home_name="Home A",
            thresholds=VerificationThresholds(timing_window_minutes=30),
        ))
        registry.register(VerificationPolicy(
            home_id="home_b", home_name="Home B",
            thresholds=VerificationThresholds(timing_window_minutes=60),
        ))
        assert registry.get("home_a").thresholds.timing_window_minutes == 30
        assert registry.get("home_b").thresholds.timing_window_minutes == 60

    def test_update_existing_policy(self):
        registry = PolicyRegistry()
        registry.register(VerificationPolicy(home_id="home_a", home_name="Home A"))
        registry.update(VerificationPolicy(home_id="home_a", home_name="Home A", confidence_gate="warn"))
        assert registry.get("home_a").confidence_gate == "warn"

    def test_update_nonexistent_raises_key_error(self):
        with pytest.raises(KeyError):
            PolicyRegistry().update(VerificationPolicy(home_id="ghost", home_name="Ghost"))

    def test_list_homes_sorted(self):
        registry = PolicyRegistry()
        for hid in ["charlie", "alpha", "bravo"]:
            registry.register(VerificationPolicy(home_id=hid, home_name=hid.title()))
        assert registry.list_homes() == ["alpha", "bravo", "charlie"]

    def test_registry_returns_deep_copies(self):
        """Mutations to retrieved policies must not affect the registry."""
        registry = PolicyRegistry()
        registry.register(VerificationPolicy(home_id="home_a", home_name="Home A"))

        retrieved = registry.get("home_a")
        retrieved.thresholds.confidence_threshold = 0.1

        assert registry.get("home_a").thresholds.confidence_threshold == 0.95


# ---------------------------------------------------------------------------
# 5. YAML loading
# ---------------------------------------------------------------------------

class TestYAMLLoader:
    def _write_yaml(self, policies_data: list[dict], tmp_dir: Path) -> Path:
        path = tmp_dir / "policies.yaml"
        with open(path, "w") as f:
            yaml.dump({"policies": policies_data}, f)
        return path

    def test_load_valid_yaml(self, tmp_path):
        data = [{
            "home_id": "yaml_home",
            "home_name": "YAML Test Home",
            "thresholds": {"timing_window_minutes": 45},
        }]
        policies = load_policies_from_yaml(self._write_yaml(data, tmp_path))
        assert len(policies) == 1
        assert policies[0].home_id == "yaml_home"
        assert policies[0].thresholds.timing_window_minutes == 45

    def test_load_multiple_policies(self, tmp_path):
        data = [{"home_id": f"home_{i}", "home_name": f"Home {i}"} for i in range(3)]
        assert len(load_policies_from_yaml(self._write_yaml(data, tmp_path))) == 3

    def test_load_nonexistent_file_raises(self):
        with pytest.raises(FileNotFoundError):
            load_policies_from_yaml("/nonexistent/path.yaml")

    def test_load_invalid_structure_raises(self, tmp_path):
        path = tmp_path / "bad.yaml"
        with open(path, "w") as f:
            yaml.dump({"not_policies": []}, f)
        with pytest.raises(ValueError, match="top-level 'policies' key"):
            load_policies_from_yaml(path)

    def test_load_non_mapping_entry_raises(self, tmp_path):
        path = tmp_path / "bad.yaml"
        with open(path, "w") as f:
            yaml.dump({"policies": ["just a string"]}, f)
        with pytest.raises(ValueError, match="index 0"):
            load_policies_from_yaml(path)

    def test_load_sample_home_policies(self):
        """The bundled example file loads successfully."""
        sample_path = Path(__file__).parent.parent / "examples" / "home_policies.yaml"
        policies = load_policies_from_yaml(sample_path)
        home_ids = [p.home_id for p in policies]
        assert "oakfield" in home_ids
        assert "riverside" in home_ids
        riverside = next(p for p in policies if p.home_id == "riverside")
        assert riverside.confidence_gate == "warn"
