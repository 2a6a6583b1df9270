"""Tests for StatePatchMerger — shallow merge, whole-patch validation, policies.

Run:
    pytest tests/test_merger.py -v
"""

from __future__ import annotations

from unittest.mock import MagicMock

from streamflow.debug import StreamDebugLogger
from streamflow.state.merger import NotificationMergePolicy, StatePatchMerger
from streamflow.state.models import Genre, StateDocument, wire_keys
from streamflow.stream.events import NodeUpdatePayload, classify
from streamflow.transcript import TokenAccumulator, TranscriptBuilder
from wire import ai_message, content_item, notification, updates


def _merger(**kwargs) -> StatePatchMerger:
    return StatePatchMerger(debug=StreamDebugLogger(), **kwargs)


# ---------------------------------------------------------------------------
# 1. Document defaults
# ---------------------------------------------------------------------------


class TestStateDocument:
    def test_defaults_cover_every_key(self):
        wire = StateDocument().to_wire()
        assert set(wire) == wire_keys()
        assert wire["recommendations"] == []
        assert wire["featuredContent"] is None
        assert wire["loadingStates"] == {
            "recommendations": False,
            "trending": False,
            "search": False,
            "featured": False,
        }

    def test_wire_keys_are_camel_case(self):
        keys = wire_keys()
        assert {"featuredContent", "continueWatching", "searchResults"} <= keys
        assert "featured_content" not in keys


# ---------------------------------------------------------------------------
# 2. apply_patch
# ---------------------------------------------------------------------------


class TestApplyPatch:
    def test_shallow_replace_of_lists(self):
        merger = _merger()
        merger.apply_patch({"trending": [content_item("a"), content_item("b")]})
        merger.apply_patch({"trending": [content_item("c")]})
        assert [item.id for item in merger.state.trending] == ["c"]

    def test_untouched_keys_survive(self):
        merger = _merger()
        merger.apply_patch({"searchQuery": "space", "searchResults": [content_item()]})
        merger.apply_patch({"activeGenre": "drama"})
        assert merger.state.search_query == "space"
        assert merger.state.active_genre is Genre.DRAMA

    def test_nested_object_is_replaced_not_merged(self):
        merger = _merger()
        merger.apply_patch({"loadingStates": {"trending": True, "search": True}})
        merger.apply_patch({"loadingStates": {"search": False}})
        assert merger.state.loading_states.trending is False

    def test_identical_patch_is_idempotent(self):
        merger = _merger()
        patch = {"recommendations": [content_item()], "recommendationReason": "Because you liked space"}
        merger.apply_patch(patch)
        once = merger.state
        merger.apply_patch(patch)
        assert merger.state == once

    def test_empty_patch_changes_nothing(self):
        merger = _merger()
        listener = MagicMock()
        merger.subscribe(listener)
        assert merger.apply_patch({}) is True
        listener.assert_not_called()

    def test_unknown_key_drops_whole_patch(self):
        debug = StreamDebugLogger()
        merger = StatePatchMerger(debug=debug)
        assert merger.apply_patch({"searchQuery": "x", "bogus": 1}, source="tools") is False
        assert merger.state.search_query is None
        assert merger.rejected_count == 1
        [event] = debug.get_recent_events()
        assert event["code"] == "E_PATCH_REJECTED"
        assert event["node"] == "tools"

    def test_invalid_shape_drops_whole_patch(self):
        merger = _merger()
        merger.apply_patch({"searchQuery": "kept"})
        bad = dict(content_item(), rating=42)
        assert merger.apply_patch({"searchQuery": "lost", "trending": [bad]}) is False
        assert merger.state.search_query == "kept"
        assert merger.state.trending == []

    def test_wrong_type_for_list_key(self):
        merger = _merger()
        assert merger.apply_patch({"recommendations": "none"}) is False

    def test_listener_sees_each_effective_change(self):
        merger = _merger()
        listener = MagicMock()
        merger.subscribe(listener)
        merger.apply_patch({"searchQuery": "a"})
        merger.apply_patch({"searchQuery": "a"})
        merger.apply_patch({"searchQuery": "b"})
        assert listener.call_count == 2
        assert listener.call_args.args[0].search_query == "b"

    def test_later_listeners_never_see_a_superseded_document(self):
        merger = _merger()
        seen: list[StateDocument] = []

        def drop_notifications(state: StateDocument) -> None:
            for n in state.notifications:
                merger.remove_notification(n.id)

        merger.subscribe(drop_notifications)
        merger.subscribe(seen.append)
        merger.apply_patch({"notifications": [notification("n1")], "searchQuery": "q"})

        assert merger.state.notifications == []
        assert seen == [merger.state]
        assert seen[0].search_query == "q"


# ---------------------------------------------------------------------------
# 3. Node updates and snapshots
# ---------------------------------------------------------------------------


class TestIngest:
    def test_later_nodes_win_in_record_order(self):
        merger = _merger()
        record = classify(updates(tools={"uiState": {"searchQuery": "first"}},
                                  model={"uiState": {"searchQuery": "second"}}))
        assert merger.ingest_record(record) == 2
        assert merger.state.search_query == "second"

    def test_rejected_node_does_not_block_others(self):
        merger = _merger()
        record = classify(updates(tools={"uiState": {"nope": True}},
                                  model={"uiState": {"trendingCategory": "Sci-Fi"}}))
        merger.ingest_record(record)
        assert merger.state.trending_category == "Sci-Fi"
        assert merger.rejected_count == 1
        assert merger.applied_count == 1

    def test_final_messages_reach_the_transcript(self):
        transcript = TranscriptBuilder()
        accumulator = TokenAccumulator(transcript)
        merger = StatePatchMerger(accumulator, debug=StreamDebugLogger())
        merger.ingest_record(classify(updates(model={"messages": [ai_message("All set.")]})))
        assert [e.content for e in transcript.entries] == ["All set."]

    def test_update_without_patch(self):
        merger = _merger()
        merger.ingest_node_update(NodeUpdatePayload(node_name="model"))
        assert merger.applied_count == 0
        assert merger.rejected_count == 0

    def test_values_snapshot_merges_ui_state(self):
        merger = _merger()
        merger.apply_patch({"searchQuery": "kept"})
        assert merger.ingest_snapshot(classify(["values", {"uiState": {"activeGenre": "horror"}}])) is True
        assert merger.state.active_genre is Genre.HORROR
        assert merger.state.search_query == "kept"

    def test_values_without_ui_state(self):
        assert _merger().ingest_snapshot(classify(["values", {"messages": []}])) is False


# ---------------------------------------------------------------------------
# 4. Notifications, search and snapshots
# ---------------------------------------------------------------------------


class TestNotificationPolicy:
    def test_replace_policy_overwrites(self):
        merger = _merger()
        merger.apply_patch({"notifications": [notification("n1")]})
        merger.apply_patch({"notifications": [notification("n2")]})
        assert [n.id for n in merger.state.notifications] == ["n2"]

    def test_append_policy_keeps_existing(self):
        merger = _merger(notification_policy=NotificationMergePolicy.APPEND)
        merger.apply_patch({"notifications": [notification("n1")]})
        merger.apply_patch({"notifications": [notification("n2"), notification("n1", "Updated")]})
        assert [(n.id, n.message) for n in merger.state.notifications] == [("n1", "Updated"), ("n2", "Saved")]

    def test_append_policy_still_validates(self):
        merger = _merger(notification_policy=NotificationMergePolicy.APPEND)
        assert merger.apply_patch({"notifications": "oops"}) is False

    def test_append_policy_rejects_non_string_ids(self):
        merger = _merger(notification_policy=NotificationMergePolicy.APPEND)
        merger.apply_patch({"notifications": [notification("n1")]})
        bad = dict(notification("n2"), id=["bad"])
        assert merger.apply_patch({"notifications": [bad], "searchQuery": "x"}) is False
        assert [n.id for n in merger.state.notifications] == ["n1"]
        assert merger.state.search_query is None

    def test_timestamp_is_kept_verbatim(self):
        merger = _merger()
        stamped = dict(notification("n1"), timestamp="2025-01-01T12:00:00.000Z")
        loose = dict(notification("n2"), timestamp="Mon Jan 01 2025")
        assert merger.apply_patch({"searchQuery": "sci-fi", "notifications": [stamped, loose]}) is True
        assert merger.state.search_query == "sci-fi"
        assert [n["timestamp"] for n in merger.snapshot()["notifications"]] == [
            "2025-01-01T12:00:00.000Z",
            "Mon Jan 01 2025",
        ]

    def test_add_notification_appends_under_replace(self):
        merger = _merger()
        merger.apply_patch({"notifications": [notification("n1")]})
        assert merger.add_notification(notification("err", "Boom", "error")) is True
        assert [n.id for n in merger.state.notifications] == ["n1", "err"]

    def test_remove_notification(self):
        merger = _merger()
        merger.apply_patch({"notifications": [notification("n1"), notification("n2")]})
        assert merger.remove_notification("n1") is True
        assert merger.remove_notification("n1") is False
        assert [n.id for n in merger.state.notifications] == ["n2"]


class TestHelpers:
    def test_clear_search(self):
        merger = _merger()
        merger.apply_patch({"searchQuery": "space", "searchResults": [content_item()], "trending": [content_item()]})
        merger.clear_search()
        assert merger.state.search_query is None
        assert merger.state.search_results == []
        assert len(merger.state.trending) == 1

    def test_snapshot_is_camel_case_and_detached(self):
        merger = _merger()
        merger.apply_patch({"featuredContent": content_item()})
        snap = merger.snapshot()
        assert snap["featuredContent"]["posterUrl"] == "https://img.example/p.jpg"
        snap["featuredContent"]["title"] = "changed"
        assert merger.state.featured_content.title == "Starfall"
