"""Tests for the Detector Engine."""

import pytest

from anchor_sentinel.analysis import build_model
from anchor_sentinel.detectors import CATALOG, Detector, Hit, get_detector, run, select
from anchor_sentinel.report import Location, Severity

from conftest import VAULT_REFORMATTED_SOURCE, VAULT_SOURCE


def fingerprints(result):
    return {f.fingerprint for f in result}


def broken_predicate(model, config):
    raise RuntimeError("boom")
    yield  # pragma: no cover


def dangling_predicate(model, config):
    yield Hit(
        location=Location(program="vault_program", instruction="no_such_instruction"),
        signature="dangling",
        title="Dangling",
        message="Points at nothing",
    )


def custom_detector(detector_id, predicate):
    return Detector(
        id=detector_id,
        name="Test",
        severity=Severity.HIGH,
        cwe="CWE-0",
        description="",
        remediation="",
        predicate=predicate,
    )


class TestSelection:
    def test_all(self):
        assert len(select(CATALOG)) == len(CATALOG)

    def test_ids_and_exclusions(self):
        chosen = select(CATALOG, ["v001", "V003", "V006"], exclude=["V003"])
        assert [d.id for d in chosen] == ["V001", "V006"]

    def test_unknown_id_is_an_error(self):
        with pytest.raises(ValueError, match="V999"):
            select(CATALOG, ["V001", "V999"])

    def test_bad_selection_string(self):
        with pytest.raises(ValueError):
            select(CATALOG, "everything")


class TestRun:
    def test_relay_selection(self, relay_model):
        result = run(relay_model, {"V001", "V003", "V006"})
        assert result.ids == ["V001", "V003", "V006"]
        assert result.diagnostics == ()

    def test_only_selected_ids_are_reported(self, relay_model):
        ids = {f.detector_id for f in run(relay_model, {"V001", "V003"})}
        assert ids == {"V001", "V003"}
        assert "V006" in {f.detector_id for f in run(relay_model)}

    def test_findings_are_sorted_by_severity(self, relay_model):
        ranks = [f.severity.rank for f in run(relay_model)]
        assert ranks == sorted(ranks, reverse=True)

    def test_independence(self, relay_model):
        together = run(relay_model, {"V001", "V003", "V006"})
        separate = set()
        for detector_id in ("V001", "V003", "V006"):
            separate |= fingerprints(run(relay_model, {detector_id}))
        assert fingerprints(together) == separate

    def test_monotonic_in_selection(self, relay_model):
        small = fingerprints(run(relay_model, {"V001"}))
        large = fingerprints(run(relay_model, {"V001", "V006"}))
        assert small <= large <= fingerprints(run(relay_model))

    def test_deterministic_across_workers(self, relay_model):
        sequential = run(relay_model)
        parallel = run(relay_model, max_workers=4)
        assert sequential.findings == parallel.findings

    def test_severity_floor(self, relay_model):
        result = run(relay_model, severity_floor="critical")
        assert result.findings
        assert all(f.severity == Severity.CRITICAL for f in result)

    def test_severity_floors_nest(self, relay_model):
        critical, high, medium, low = [
            fingerprints(run(relay_model, severity_floor=level))
            for level in ("critical", "high", "medium", "low")
        ]
        assert critical <= high <= medium <= low
        assert critical < high
        assert medium < low
        assert low == fingerprints(run(relay_model))

    def test_empty_selection(self, relay_model):
        assert len(run(relay_model, set())) == 0


class TestFaultIsolation:
    def test_failing_detectors_become_diagnostics(self, vault_model):
        catalog = [
            get_detector("V001"),
            custom_detector("X001", broken_predicate),
            custom_detector("X002", dangling_predicate),
        ]
        result = run(vault_model, catalog=catalog)

        assert result.ids == ["V001"]
        assert [d.detector_id for d in result.diagnostics] == ["X001", "X002"]
        assert "RuntimeError: boom" in result.diagnostics[0].message
        assert "does not resolve" in result.diagnostics[1].message


class TestFingerprints:
    def test_reformatting_keeps_identity(self):
        original = run(build_model(VAULT_SOURCE))
        reformatted = run(build_model(VAULT_REFORMATTED_SOURCE))
        assert fingerprints(original)
        assert fingerprints(original) == fingerprints(reformatted)

    def test_moving_the_program_keeps_identity(self):
        original = run(build_model(VAULT_SOURCE, "programs/vault/src/lib.rs"))
        shifted = run(build_model("\n\n// moved\n" + VAULT_SOURCE, "lib.rs"))
        assert fingerprints(original) == fingerprints(shifted)

    def test_fingerprint_shape(self, vault_model):
        for finding in run(vault_model):
            assert len(finding.fingerprint) == 32
            int(finding.fingerprint, 16)
