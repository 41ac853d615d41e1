"""Tests for the Diff Engine."""

from dataclasses import replace

import pytest

from anchor_sentinel.analysis import build_model
from anchor_sentinel.detectors import run
from anchor_sentinel.diff import diff

from conftest import VAULT_FIXED_SOURCE, VAULT_REFORMATTED_SOURCE, VAULT_SOURCE


def findings_of(source):
    return run(build_model(source, "programs/vault/src/lib.rs")).findings


def test_fixed_signer_check():
    old = findings_of(VAULT_SOURCE)
    new = findings_of(VAULT_FIXED_SOURCE)
    signer = [f for f in old if f.detector_id == "V001"][0]

    result = diff(old, new)
    assert signer.fingerprint in result.fixed
    assert [f.detector_id for f in result.fixed_findings] == ["V001"]
    assert result.new == frozenset()
    assert not result.has_regressions


def test_regression_is_new():
    result = diff(findings_of(VAULT_FIXED_SOURCE), findings_of(VAULT_SOURCE))
    assert [f.detector_id for f in result.new_findings] == ["V001"]
    assert result.has_regressions


def test_partition_covers_both_sides():
    old = findings_of(VAULT_SOURCE)
    new = findings_of(VAULT_FIXED_SOURCE)
    result = diff(old, new)

    old_keys = {f.fingerprint for f in old}
    new_keys = {f.fingerprint for f in new}
    assert result.new | result.persisted == new_keys
    assert result.fixed | result.persisted == old_keys
    assert not (result.new & result.fixed)
    assert not (result.new & result.persisted)


def test_reformatting_only_drifts():
    result = diff(findings_of(VAULT_SOURCE), findings_of(VAULT_REFORMATTED_SOURCE))
    assert result.new == result.fixed == frozenset()
    assert result.persisted
    # lines moved, identity did not
    assert result.drifted()


def test_identical_snapshots_do_not_drift():
    findings = findings_of(VAULT_SOURCE)
    result = diff(findings, findings)
    assert result.persisted == {f.fingerprint for f in findings}
    assert result.drifted() == []


def test_first_occurrence_wins():
    finding = findings_of(VAULT_SOURCE)[0]
    duplicate = replace(finding, message="a later copy")
    result = diff([finding, duplicate], [finding])
    old, new = result.pairs[finding.fingerprint]
    assert old.message == finding.message
    assert result.drifted() == []


def test_to_dict():
    result = diff(findings_of(VAULT_SOURCE), findings_of(VAULT_FIXED_SOURCE))
    data = result.to_dict()
    assert data["summary"] == {
        "new": 0,
        "fixed": 1,
        "persisted": len(result.persisted),
    }
    assert data["fixed"][0]["id"] == "V001"
    assert data["persisted"] == sorted(data["persisted"])


def test_report_is_read_only():
    findings = findings_of(VAULT_SOURCE)
    result = diff(findings, findings)
    with pytest.raises(TypeError):
        result.pairs["extra"] = (findings[0], findings[0])
    assert set(result.pairs) == {f.fingerprint for f in findings}
