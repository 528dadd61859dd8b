from __future__ import annotations

from builders import make_rec

from quadtune.engine.remap import remap_recommendations


class TestRemapRecommendations:
    def test_empty_remap_returns_same_list(self) -> None:
        recs = [make_rec("a"), make_rec("b", ["c"])]
        assert remap_recommendations(recs, {}) is recs

    def test_unaffected_recommendation_is_same_object(self) -> None:
        rec = make_rec("a", ["b"])
        assert remap_recommendations([rec], {"z": "y"})[0] is rec

    def test_primary_id_is_rewritten(self) -> None:
        rec = make_rec("old")
        out = remap_recommendations([rec], {"old": "new"})[0]
        assert out.issue_id == "new"
        assert out.id == rec.id
        assert out.title == rec.title

    def test_related_ids_are_rewritten_and_deduplicated_in_order(self) -> None:
        rec = make_rec("a", ["b", "c", "d", "b"])
        out = remap_recommendations([rec], {"b": "x", "d": "x"})[0]
        assert out.related_issue_ids == ("x", "c")

    def test_related_id_equal_to_primary_is_dropped(self) -> None:
        rec = make_rec("a", ["b", "c"])
        out = remap_recommendations([rec], {"a": "c"})[0]
        assert out.issue_id == "c"
        assert out.related_issue_ids == ("b",)

    def test_related_ids_collapsing_to_primary_become_none(self) -> None:
        rec = make_rec("a", ["b"])
        out = remap_recommendations([rec], {"b": "a"})[0]
        assert out.related_issue_ids is None

    def test_lookup_is_single_step(self) -> None:
        rec = make_rec("a")
        out = remap_recommendations([rec], {"a": "b", "b": "c"})[0]
        assert out.issue_id == "b"

    def test_input_recommendation_is_not_mutated(self) -> None:
        rec = make_rec("a", ["b"])
        remap_recommendations([rec], {"a": "z", "b": "y"})
        assert rec.issue_id == "a"
        assert rec.related_issue_ids == ("b",)
