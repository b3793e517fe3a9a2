"""
Tests for adpilot.core.workflow: untrusted metadata -> WorkflowContext.

Covers:
  1. Defaults for missing / non-object metadata
  2. Field-by-field coercion (booleans, goals, steps, indices)
  3. Mode derivation (setup, results, edit, location setup)
  4. Editing reference parsing and the derived reference text block
  5. Journey metadata snapshot
"""
from __future__ import annotations

import logging

import pytest

from adpilot.core.workflow import (
    EditingReference,
    WorkflowContext,
    WorkflowMode,
    build_journey_metadata,
    build_reference_context,
    parse_goal,
    parse_workflow_metadata,
)


def _ctx(**metadata) -> WorkflowContext:
    return parse_workflow_metadata({"metadata": metadata})


# ===========================================================================
# 1. Defaults
# ===========================================================================

class TestDefaults:

    def test_missing_metadata_gives_setup_defaults(self) -> None:
        ctx = parse_workflow_metadata({"id": "m1"})
        assert ctx == WorkflowContext()
        assert ctx.mode is WorkflowMode.SETUP

    def test_non_object_metadata_is_ignored_with_warning(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.WARNING):
            ctx = parse_workflow_metadata({"metadata": ["not", "a", "dict"]})
        assert ctx == WorkflowContext()
        assert "non-object message metadata" in caplog.text

    def test_accepts_objects_with_metadata_attribute(self) -> None:
        class Msg:
            metadata = {"activeTab": "results", "goalType": "calls"}

        ctx = parse_workflow_metadata(Msg())
        assert ctx.active_tab == "results"
        assert ctx.goal == "calls"


# ===========================================================================
# 2. Coercion
# ===========================================================================

class TestCoercion:

    @pytest.mark.parametrize("value", ["true", 1, "yes", None])
    def test_only_real_booleans_enable_edit_mode(self, value) -> None:
        assert _ctx(editMode=value).edit_mode is False

    def test_unknown_goal_is_unset(self) -> None:
        assert _ctx(goalType="brand-awareness").goal is None
        assert parse_goal("leads") == "leads"
        assert parse_goal(42) is None

    def test_unknown_tab_falls_back_to_setup(self) -> None:
        assert _ctx(activeTab="billing").active_tab == "setup"

    def test_strings_are_trimmed_and_blank_means_unset(self) -> None:
        ctx = _ctx(currentStep="  location  ", campaignId="   ")
        assert ctx.current_step == "location"
        assert ctx.campaign_id is None

    def test_location_mode_must_be_known(self) -> None:
        assert _ctx(locationMode="exclude").location_mode == "exclude"
        assert _ctx(locationMode="everywhere").location_mode is None


# ===========================================================================
# 3. Modes
# ===========================================================================

class TestModes:

    def test_results_tab(self) -> None:
        assert _ctx(activeTab="results").mode is WorkflowMode.RESULTS

    def test_location_setup_needs_input(self, caplog: pytest.LogCaptureFixture) -> None:
        assert _ctx(locationSetupMode=True, locationInput="Austin, TX").mode is WorkflowMode.LOCATION_SETUP
        with caplog.at_level(logging.WARNING):
            ctx = _ctx(locationSetupMode=True)
        assert ctx.mode is WorkflowMode.SETUP
        assert "no location input" in caplog.text

    def test_edit_mode_without_reference_stays_in_setup(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.WARNING):
            ctx = _ctx(editMode=True)
        assert ctx.mode is WorkflowMode.SETUP
        assert ctx.edit_target is None
        assert "no editing reference" in caplog.text

    def test_edit_mode_with_reference(self) -> None:
        ctx = _ctx(editMode=True, editingReference={"variationIndex": 2, "imageUrl": "https://cdn/x.png"})
        assert ctx.mode is WorkflowMode.EDIT
        assert ctx.edit_target is not None
        assert ctx.edit_target.variation_index == 2

    def test_reference_without_index_has_no_target(self) -> None:
        ctx = _ctx(editMode=True, editingReference={"imageUrl": "https://cdn/x.png"})
        assert ctx.mode is WorkflowMode.EDIT
        assert ctx.edit_target is None

    def test_reference_ignored_when_edit_mode_off(self) -> None:
        ctx = _ctx(editMode=False, editingReference={"variationIndex": 1})
        assert ctx.edit_target is None


# ===========================================================================
# 4. Editing reference
# ===========================================================================

class TestEditingReference:

    def test_negative_or_boolean_index_is_dropped(self) -> None:
        assert _ctx(editingReference={"variationIndex": -1}).editing_reference.variation_index is None
        assert _ctx(editingReference={"variationIndex": True}).editing_reference.variation_index is None

    def test_copy_fields_mark_a_copy_edit(self) -> None:
        ctx = _ctx(editingReference={"variationIndex": 0, "metadata": {"fields": ["headline"]}})
        assert ctx.editing_reference.is_copy_edit

    def test_content_marks_a_copy_edit(self) -> None:
        ref = EditingReference(variation_index=0, content={"headline": "Roofs done right"})
        assert ref.is_copy_edit

    def test_session_id_is_read_from_edit_session(self) -> None:
        ctx = _ctx(editingReference={"variationIndex": 0, "editSession": {"sessionId": "s-123"}})
        assert ctx.editing_reference.session_id == "s-123"

    def test_creative_reference_context(self) -> None:
        ref = EditingReference(variation_index=3, image_url="https://cdn/v3.png", variation_title="Variation 4", format="feed")
        text = build_reference_context(ref)
        assert text.startswith("[USER IS EDITING: Variation 4 (feed format)]")
        assert "Variation Index: 3" in text
        assert "**You MUST use editVariation or regenerateVariation**" in text

    def test_copy_reference_context(self) -> None:
        ref = EditingReference(variation_index=1, content={"primaryText": "Free inspection", "headline": "Fix it fast"})
        text = build_reference_context(ref)
        assert '- Primary Text: "Free inspection"' in text
        assert '- Headline: "Fix it fast"' in text
        assert "**You MUST call editCopy tool**" in text

    def test_no_reference_no_context(self) -> None:
        assert build_reference_context(None) == ""


# ===========================================================================
# 5. Journey metadata
# ===========================================================================

class TestJourneyMetadata:

    def test_snapshot_is_camel_case_and_sparse(self) -> None:
        ctx = _ctx(activeTab="setup", currentStep="ads", goalType="leads", campaignId="c-1")
        assert build_journey_metadata(ctx) == {
            "activeTab": "setup",
            "currentStep": "ads",
            "goalType": "leads",
            "campaignId": "c-1",
        }

    def test_snapshot_records_edit_and_location_state(self) -> None:
        ctx = _ctx(
            editMode=True,
            editingReference={"variationIndex": 4},
            locationSetupMode=True,
            locationInput="Denver",
            locationMode="include",
        )
        meta = build_journey_metadata(ctx)
        assert meta["editMode"] is True
        assert meta["variationIndex"] == 4
        assert meta["locationInput"] == "Denver"
        assert meta["locationMode"] == "include"
