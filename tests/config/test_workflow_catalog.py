"""
Tests for the workflow catalog: YAML loading, validation and compilation.
"""

import copy

import pytest
import yaml

from voucher_config import (
    DEFAULT_CATALOG_PATH,
    CompilationFailedError,
    get_workflow_catalog,
)
from voucher_config.loader import load_yaml_file, parse_configuration
from voucher_config.validator import validate_workflow_configuration
from voucher_kernel.domain.workflow import (
    StageKind,
    VoucherStatus,
    WorkflowVariantKind,
)


@pytest.fixture
def raw_catalog():
    """A mutable copy of the shipped catalog mapping."""
    return copy.deepcopy(load_yaml_file(DEFAULT_CATALOG_PATH))


def _variant(raw, name):
    return next(v for v in raw["variants"] if v["name"] == name)


def _errors(raw):
    return validate_workflow_configuration(parse_configuration(raw)).errors


def _write(tmp_path, raw, name="workflows.yaml"):
    path = tmp_path / name
    path.write_text(yaml.safe_dump(raw, sort_keys=False))
    return path


# ---------------------------------------------------------------------------
# Shipped catalog
# ---------------------------------------------------------------------------


class TestShippedCatalog:

    def test_three_variants(self, catalog):
        kinds = {v.kind for v in catalog.variants}
        assert kinds == set(WorkflowVariantKind)

    def test_default_is_standard(self, catalog):
        assert catalog.default_variant == WorkflowVariantKind.STANDARD

    def test_standard_and_hr_share_layout(self, catalog):
        standard = catalog.get(WorkflowVariantKind.STANDARD)
        hr = catalog.get(WorkflowVariantKind.HR)
        assert standard.role_table == hr.role_table
        assert [s.label for s in standard.stages] != [s.label for s in hr.stages]

    def test_gso_inserts_bac_quorum(self, catalog):
        gso = catalog.get(WorkflowVariantKind.GSO)
        assert gso.role_table == {
            "SECRETARY": 1, "MAYOR": 2, "BAC": 3,
            "BUDGET": 4, "ACCOUNTING": 5, "TREASURY": 6,
        }
        assert gso.quorum_stage.kind == StageKind.QUORUM

    def test_quorum_policy(self, catalog):
        assert catalog.quorum.setting_key == "bac_required_approvals"
        assert catalog.quorum.default_threshold == 3
        assert (catalog.quorum.min_threshold, catalog.quorum.max_threshold) == (1, 10)

    def test_admin_and_submit_roles(self, catalog):
        assert catalog.admin_roles == frozenset({"ADMIN"})
        assert "ADMIN" in catalog.submit_roles

    def test_treasury_is_single_final_stage(self, catalog):
        for variant in catalog.variants:
            treasury = [s for s in variant.stages if s.role == "TREASURY"]
            assert len(treasury) == 1
            assert treasury[0] is variant.stages[-1]
            assert treasury[0].stage_id == "treasury-release"
            assert treasury[0].kind == StageKind.SINGLE

    def test_only_pending_is_actionable(self, catalog):
        for variant in catalog.variants:
            assert variant.actionable_statuses == frozenset({VoucherStatus.PENDING})

    def test_loaded_once(self):
        assert get_workflow_catalog() is get_workflow_catalog()
        assert get_workflow_catalog(DEFAULT_CATALOG_PATH) is get_workflow_catalog()

    def test_checksum_is_stable(self, raw_catalog):
        assert parse_configuration(raw_catalog).checksum == get_workflow_catalog().checksum


class TestCatalogTrace:

    def test_load_emits_config_trace(self, tmp_path, raw_catalog, captured_logs):
        raw_catalog["config_id"] = "trace-test"
        get_workflow_catalog(_write(tmp_path, raw_catalog))

        traces = [r for r in captured_logs() if r["message"] == "WORKFLOW_CONFIG_TRACE"]
        assert len(traces) == 1
        assert traces[0]["config_id"] == "trace-test"
        assert traces[0]["variant_count"] == 3
        assert len(traces[0]["checksum"]) == 64


# ---------------------------------------------------------------------------
# Validation failures
# ---------------------------------------------------------------------------


class TestCatalogValidation:

    def test_shipped_catalog_is_valid(self, raw_catalog):
        assert _errors(raw_catalog) == []

    def test_gap_in_stage_numbers(self, raw_catalog):
        _variant(raw_catalog, "STANDARD")["stages"][2]["stage"] = 7
        assert any("stage numbers" in e for e in _errors(raw_catalog))

    def test_role_holding_two_stages(self, raw_catalog):
        _variant(raw_catalog, "HR")["stages"][1]["role"] = "SECRETARY"
        assert any("holds more than one stage" in e for e in _errors(raw_catalog))

    def test_unknown_role(self, raw_catalog):
        _variant(raw_catalog, "STANDARD")["stages"][0]["role"] = "JANITOR"
        assert any("unknown role 'JANITOR'" in e for e in _errors(raw_catalog))

    def test_quorum_stage_cannot_be_last(self, raw_catalog):
        _variant(raw_catalog, "GSO")["stages"][-1]["kind"] = "quorum"
        errors = _errors(raw_catalog)
        assert any("more than one quorum stage" in e for e in errors)
        assert any("cannot be the last stage" in e for e in errors)

    def test_quorum_stage_cannot_be_first(self, raw_catalog):
        stages = _variant(raw_catalog, "STANDARD")["stages"]
        stages[0]["kind"] = "quorum"
        assert any("cannot be the first stage" in e for e in _errors(raw_catalog))

    def test_origin_role_claimed_twice(self, raw_catalog):
        _variant(raw_catalog, "HR")["origin_roles"].append("GSO")
        assert any("claimed by both" in e for e in _errors(raw_catalog))

    def test_missing_variant(self, raw_catalog):
        raw_catalog["variants"] = [v for v in raw_catalog["variants"] if v["name"] != "HR"]
        assert any("'HR' is not defined" in e for e in _errors(raw_catalog))

    def test_quorum_bounds(self, raw_catalog):
        raw_catalog["quorum"]["default_threshold"] = 12
        assert any("Quorum bounds" in e for e in _errors(raw_catalog))

    def test_terminal_status_on_approve(self, raw_catalog):
        _variant(raw_catalog, "STANDARD")["stages"][0]["status_on_approve"] = "RELEASED"
        assert any("is terminal" in e for e in _errors(raw_catalog))

    def test_status_on_approve_moving_backward(self, raw_catalog):
        variant = _variant(raw_catalog, "STANDARD")
        variant["actionable_statuses"] = ["PENDING", "VALIDATED", "APPROVED"]
        variant["stages"][0]["status_on_approve"] = "APPROVED"
        variant["stages"][1]["status_on_approve"] = "VALIDATED"
        assert any("moves backward" in e for e in _errors(raw_catalog))

    def test_status_on_approve_must_be_actionable(self, raw_catalog):
        _variant(raw_catalog, "STANDARD")["stages"][0]["status_on_approve"] = "VALIDATED"
        assert any("not actionable" in e for e in _errors(raw_catalog))

    def test_forward_intermediate_statuses_accepted(self, raw_catalog):
        variant = _variant(raw_catalog, "STANDARD")
        variant["actionable_statuses"] = ["PENDING", "VALIDATED", "APPROVED"]
        variant["stages"][0]["status_on_approve"] = "VALIDATED"
        variant["stages"][1]["status_on_approve"] = "APPROVED"
        assert _errors(raw_catalog) == []

    def test_draft_cannot_be_actionable(self, raw_catalog):
        _variant(raw_catalog, "GSO")["actionable_statuses"] = ["DRAFT", "PENDING"]
        assert any("cannot be actionable" in e for e in _errors(raw_catalog))

    def test_non_integer_stage_rejected_at_load(self, raw_catalog):
        _variant(raw_catalog, "STANDARD")["stages"][0]["stage"] = "one"
        with pytest.raises(ValueError):
            parse_configuration(raw_catalog)


class TestCompilation:

    def test_invalid_catalog_fails_to_compile(self, tmp_path, raw_catalog):
        _variant(raw_catalog, "GSO")["stages"][2]["stage"] = 9
        with pytest.raises(CompilationFailedError) as exc_info:
            get_workflow_catalog(_write(tmp_path, raw_catalog, "broken.yaml"))
        assert exc_info.value.code == "COMPILATION_FAILED"
        assert exc_info.value.errors

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            get_workflow_catalog(tmp_path / "nope.yaml")

    def test_custom_catalog_compiles(self, tmp_path, raw_catalog):
        variant = _variant(raw_catalog, "STANDARD")
        variant["actionable_statuses"] = ["PENDING", "VALIDATED"]
        variant["stages"][3]["status_on_approve"] = "VALIDATED"
        compiled = get_workflow_catalog(_write(tmp_path, raw_catalog, "custom.yaml"))
        standard = compiled.get(WorkflowVariantKind.STANDARD)
        assert standard.get_stage(4).status_on_approve == VoucherStatus.VALIDATED
        assert VoucherStatus.VALIDATED in standard.actionable_statuses
