"""Tests for the per-table scratchpad and its key contracts."""

import pytest

from docgrid.tables.scratchpad import KeyContract, Scratchpad, ScratchpadContractError, ScratchpadKey

CONTRACT = KeyContract(
    name="Probe",
    required=frozenset({ScratchpadKey.TABULAR_GROUP}),
    optional=frozenset({ScratchpadKey.GRID_TYPE}),
    stored=frozenset({ScratchpadKey.END_RESULT}),
)


def _pad(**extra):
    values = {ScratchpadKey.TABULAR_GROUP: "table", ScratchpadKey.PAGE_NUMBER: 3}
    values.update(extra)
    return Scratchpad.seeded(values)


class TestScratchpad:
    def test_seeded_values_are_stored(self):
        pad = _pad()
        assert pad.retrieve(ScratchpadKey.TABULAR_GROUP) == "table"
        assert pad.stored_keys == {ScratchpadKey.TABULAR_GROUP, ScratchpadKey.PAGE_NUMBER}

    def test_none_counts_as_absent(self):
        pad = Scratchpad.seeded({ScratchpadKey.GRID_TYPE: None})
        assert ScratchpadKey.GRID_TYPE not in pad
        assert pad.retrieve(ScratchpadKey.GRID_TYPE, "default") == "default"

    def test_require(self):
        pad = _pad()
        assert pad.retrieve_int(ScratchpadKey.PAGE_NUMBER) == 3
        with pytest.raises(ScratchpadContractError, match="No split depth"):
            pad.require(ScratchpadKey.SPLIT_DEPTH)

    def test_retrieve_bool_defaults_to_false(self):
        assert _pad().retrieve_bool(ScratchpadKey.IS_PARENT_TABLE) is False

    def test_update(self):
        pad = Scratchpad()
        pad.update([(ScratchpadKey.SPLIT_DEPTH, 1), (ScratchpadKey.TABLE_INDEX, 0)])
        assert pad.retrieve(ScratchpadKey.SPLIT_DEPTH) == 1
        assert ScratchpadKey.TABLE_INDEX in pad


class TestContract:
    def test_missing_required_key(self):
        with pytest.raises(ScratchpadContractError, match="tabular group"):
            with Scratchpad().contract(CONTRACT):
                pass

    def test_declared_keys(self):
        pad = _pad()
        with pad.contract(CONTRACT):
            assert pad.retrieve(ScratchpadKey.TABULAR_GROUP) == "table"
            assert pad.retrieve(ScratchpadKey.GRID_TYPE) is None
            pad.store(ScratchpadKey.END_RESULT, ["table"])
        assert pad.retrieve(ScratchpadKey.END_RESULT) == ["table"]

    def test_context_keys_are_always_readable(self):
        pad = _pad()
        with pad.contract(CONTRACT):
            assert pad.retrieve(ScratchpadKey.PAGE_NUMBER) == 3

    def test_undeclared_store(self):
        pad = _pad()
        with pad.contract(CONTRACT):
            with pytest.raises(ScratchpadContractError, match="not declared as stored"):
                pad.store(ScratchpadKey.HEADER_CONFIDENCE, 0.5)

    def test_undeclared_read(self):
        pad = _pad()
        with pad.contract(CONTRACT):
            with pytest.raises(ScratchpadContractError, match="not declared as read"):
                pad.retrieve(ScratchpadKey.HEADER_CONFIDENCE)

    def test_contract_restored_after_block(self):
        pad = _pad()
        with pad.contract(CONTRACT):
            pass
        pad.store(ScratchpadKey.HEADER_CONFIDENCE, 0.5)
        assert pad.retrieve(ScratchpadKey.HEADER_CONFIDENCE) == 0.5
