"""
Tests for Protocol Layer
========================
Value codec, step definitions and the document model.
"""

from datetime import datetime, timezone

import pytest

from pair_setup.errors import InvalidFieldPath, InvalidPayload, UnknownStep, UnsupportedValueType
from pair_setup.fsm import SetupPhase
from pair_setup.protocol import (
    AppSelection,
    BlockSchedule,
    FieldSpec,
    SetupDocument,
    StepCatalog,
    StepID,
    copy_plain,
    field_path,
    from_value,
    get_step,
    initial_fields,
    to_value,
)
from pair_setup.protocol.document import missing_fields
from pair_setup.protocol.values import BoolValue, IntValue, ListValue, MapValue


class TestValueCodec:
    """Tagged-union encode / decode."""

    def test_supported_types_round_trip(self):
        plain = {
            "i": 3,
            "f": 1.5,
            "b": True,
            "s": "text",
            "m": {"nested": [1, "two", False]},
            "l": [],
        }
        assert from_value(to_value(plain)) == plain

    def test_bool_is_not_int(self):
        assert to_value(True) == BoolValue(True)
        assert to_value(1) == IntValue(1)
        assert from_value(to_value(False)) is False

    def test_tuple_encodes_as_sequence(self):
        value = to_value(("a", "b"))
        assert isinstance(value, ListValue)
        assert from_value(value) == ["a", "b"]

    def test_map_items_sorted(self):
        assert to_value({"b": 1, "a": 2}) == to_value({"a": 2, "b": 1})
        assert to_value({"a": 2}).get("a") == IntValue(2)

    @pytest.mark.parametrize("bad", [None, b"bytes", {1, 2}, object(), {1: "int key"}])
    def test_unsupported_types_raise(self, bad):
        with pytest.raises(UnsupportedValueType):
            to_value(bad)

    def test_unsupported_is_type_error(self):
        with pytest.raises(TypeError):
            to_value(None)

    def test_copy_plain_shares_nothing(self):
        original = {"appTokens": ["x"]}
        snapshot = copy_plain(original)
        original["appTokens"].append("y")
        assert snapshot == {"appTokens": ["x"]}
        assert isinstance(to_value(snapshot), MapValue)


class TestBlockScheduleStep:
    """Schedule payload schema."""

    def test_encode(self):
        step = get_step(StepID.BLOCK_SCHEDULE)
        assert step.encode(BlockSchedule(start_minutes=1260, end_minutes=420)) == {
            "startMinutes": 1260,
            "endMinutes": 420,
        }

    def test_round_trip(self):
        step = get_step("blockSchedule")
        payload = BlockSchedule(start_minutes=1320, end_minutes=360)
        result = step.decode(step.encode(payload))
        assert result.payload == payload
        assert result.defaulted is False

    def test_missing_end_defaults_to_zero(self):
        step = get_step("blockSchedule")
        result = step.decode({"startMinutes": 1260})
        assert result.payload == BlockSchedule(start_minutes=1260, end_minutes=0)
        assert result.defaulted is True
        assert result.defaulted_fields == ["endMinutes"]

    def test_mistyped_field_defaults(self):
        step = get_step("blockSchedule")
        result = step.decode({"startMinutes": "21:00", "endMinutes": True})
        assert result.payload == BlockSchedule(start_minutes=0, end_minutes=0)
        assert result.defaulted_fields == ["startMinutes", "endMinutes"]

    def test_out_of_range_field_defaults_alone(self):
        step = get_step("blockSchedule")
        result = step.decode({"startMinutes": 5000, "endMinutes": 420})
        assert result.payload == BlockSchedule(start_minutes=0, end_minutes=420)
        assert result.defaulted_fields == ["startMinutes"]

    def test_valid_bound_survives_out_of_range_partner(self):
        step = get_step("blockSchedule")
        result = step.decode({"startMinutes": 1260, "endMinutes": 1500})
        assert result.payload == BlockSchedule(start_minutes=1260, end_minutes=0)
        assert result.defaulted_fields == ["endMinutes"]

    def test_negative_minutes_default(self):
        result = get_step("blockSchedule").decode({"startMinutes": -5, "endMinutes": 420})
        assert result.payload == BlockSchedule(start_minutes=0, end_minutes=420)

    def test_decode_none(self):
        result = get_step("blockSchedule").decode(None)
        assert result.payload == BlockSchedule(0, 0)
        assert result.defaulted

    def test_plain_mapping_accepted(self):
        step = get_step("blockSchedule")
        assert step.encode({"startMinutes": 60, "endMinutes": 120}) == {"startMinutes": 60, "endMinutes": 120}

    def test_incomplete_mapping_rejected(self):
        with pytest.raises(InvalidPayload):
            get_step("blockSchedule").encode({"startMinutes": 60})

    def test_invalid_minutes_rejected(self):
        with pytest.raises(InvalidPayload):
            get_step("blockSchedule").encode({"startMinutes": 60, "endMinutes": 1440})
        with pytest.raises(ValueError):
            BlockSchedule(start_minutes=-1, end_minutes=0)

    def test_wrong_payload_type(self):
        with pytest.raises(UnsupportedValueType):
            get_step("blockSchedule").encode(AppSelection())

    def test_default_draft(self):
        assert get_step("blockSchedule").default_draft() == BlockSchedule(1260, 420)

    def test_format(self):
        assert BlockSchedule(1260, 420).format() == "21:00 -> 07:00"


class TestAppSelectionStep:
    """Selection payload schema."""

    def test_round_trip(self):
        step = get_step("appSelection")
        payload = AppSelection(app_tokens=("YQ==", "Yg=="), category_tokens=("Yw==",))
        encoded = step.encode(payload)
        assert encoded == {"appTokens": ["YQ==", "Yg=="], "categoryTokens": ["Yw=="]}
        assert step.decode(encoded).payload == payload

    def test_missing_fields_default_to_empty(self):
        result = get_step("appSelection").decode({"appTokens": ["YQ=="]})
        assert result.payload == AppSelection(app_tokens=("YQ==",), category_tokens=())
        assert result.defaulted_fields == ["categoryTokens"]

    def test_union(self):
        left = AppSelection(app_tokens=("b", "a"), category_tokens=("x",))
        right = AppSelection(app_tokens=("a", "c"))
        assert left.union(right) == AppSelection(app_tokens=("a", "b", "c"), category_tokens=("x",))

    def test_default_draft_empty(self):
        assert get_step("appSelection").default_draft() == AppSelection()


class TestFieldSpec:
    """Schema field declarations."""

    def test_unknown_kind_rejected(self):
        with pytest.raises(ValueError):
            FieldSpec("startMinutes", "int", 0)

    def test_validity_predicate(self):
        spec = FieldSpec("count", "integer", 0, valid=lambda n: n > 0)
        assert spec.accepts(3)
        assert not spec.accepts(0)
        assert FieldSpec("note", "string", "").accepts("anything")


class TestStepCatalog:
    """Configured step sequence."""

    def test_default_sequence(self):
        catalog = StepCatalog()
        assert len(catalog) == 2
        assert catalog.first == "blockSchedule"
        assert catalog.next_step("blockSchedule") == "appSelection"
        assert catalog.next_step("appSelection") is None
        assert catalog.is_last("appSelection")
        assert catalog.index_of("appSelection") == 1

    def test_unknown_step(self):
        with pytest.raises(UnknownStep):
            get_step("screenTime")
        with pytest.raises(UnknownStep):
            StepCatalog(("blockSchedule", "screenTime"))
        with pytest.raises(UnknownStep):
            StepCatalog().get("screenTime")

    def test_empty_and_duplicate_sequences(self):
        with pytest.raises(UnknownStep):
            StepCatalog(())
        with pytest.raises(UnknownStep):
            StepCatalog(("blockSchedule", "blockSchedule"))

    def test_default_schedule_override(self):
        catalog = StepCatalog(default_schedule=BlockSchedule(1320, 360))
        assert catalog.get("blockSchedule").default_draft() == BlockSchedule(1320, 360)


class TestSetupDocument:
    """Document model and two-party lookups."""

    def test_initial_fields(self):
        assert initial_fields("blockSchedule") == {
            "step": "blockSchedule",
            "stepIndex": 0,
            "phase": "awaitingASubmission",
            "answers": {},
            "submitted": {},
            "approvals": {},
            "approvedAnswers": {},
            "history": {},
        }

    def test_missing_fields_only_backfills_absent(self):
        raw = {"phase": "complete", "answers": {"A": {}}}
        backfill = missing_fields(raw, "blockSchedule")
        assert "phase" not in backfill
        assert "answers" not in backfill
        assert backfill["submitted"] == {}

    def test_from_dict_is_lenient(self):
        document = SetupDocument.from_dict(
            {"phase": 42, "answers": {"A": "not a map"}, "submitted": {"A": "yes"}},
            default_step="blockSchedule",
        )
        assert document.step == "blockSchedule"
        assert document.phase == SetupPhase.AWAITING_A_SUBMISSION
        assert document.answers == {}
        assert document.submitted == {}

    def test_from_dict_idempotent(self):
        now = datetime(2024, 1, 1, tzinfo=timezone.utc)
        raw = {
            "step": "appSelection",
            "stepIndex": 1,
            "phase": "complete",
            "answers": {"A": {"appTokens": []}},
            "completedAt": now,
        }
        first = SetupDocument.from_dict(raw, "blockSchedule")
        assert first == SetupDocument.from_dict(raw, "blockSchedule")
        assert first.completed_at == now
        assert SetupDocument.from_dict(first.to_dict(), "blockSchedule") == first

    def test_partner_answer(self):
        document = SetupDocument(step="blockSchedule", answers={"A": {"startMinutes": 1}, "B": {"startMinutes": 2}})
        assert document.partner_answer("A") == ("B", {"startMinutes": 2})
        assert document.partner_answer("B") == ("A", {"startMinutes": 1})
        assert SetupDocument(step="blockSchedule", answers={"A": {}}).partner_answer("A") is None

    def test_partner_flags(self):
        document = SetupDocument(step="blockSchedule", approvals={"B": True})
        assert document.partner_flag(document.approvals, "A") is True
        assert document.partner_flag(document.approvals, "B") is False

    def test_field_path(self):
        assert field_path("answers", "uid-1") == "answers.uid-1"
        with pytest.raises(InvalidFieldPath):
            field_path("answers", "bad.uid")
        with pytest.raises(InvalidFieldPath):
            field_path("answers", "")


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
