"""Tests for high/low marker and badge planning."""
import pytest

from mapcore.areas import AreaKind, BoundaryMode
from mapcore.extrema import (
    COMBINED,
    DOWN,
    HIGH,
    LOW,
    TONE_BAD,
    TONE_GOOD,
    TONE_NEUTRAL,
    UP,
    MarkerBadge,
    MarkerContext,
    MarkerPlan,
    PointOfInterestRow,
    extrema_tone,
    find_extreme_area_ids,
    find_linked_badge,
    plan_markers,
)
from mapcore.settings import InteractionSettings
from mapcore.stat_aggregator import make_stat_entry

P = AreaKind.PRIMARY
A = AreaKind.AGGREGATE


def centroid(kind, area_id):
    return (float(len(area_id)), 0.0)


def context(values=None, aggregate_values=None, **kwargs):
    defaults = dict(
        selected_stat_id='income',
        entries={
            P: make_stat_entry('count', values) if values is not None else None,
            A: make_stat_entry('count', aggregate_values) if aggregate_values is not None else None,
        },
        boundary_mode=BoundaryMode.PRIMARY,
        zoom=8.0,
        stat_label='Income',
    )
    defaults.update(kwargs)
    return MarkerContext(**defaults)


class TestFindExtremes:

    def test_ties_go_to_lowest_id(self):
        assert find_extreme_area_ids({'z': 5, 'a': 5}) == ('a', 'a')

    def test_high_and_low(self):
        assert find_extreme_area_ids({'a': 1, 'b': 3, 'c': 2}) == ('b', 'a')

    def test_empty(self):
        assert find_extreme_area_ids({}) == (None, None)
        assert find_extreme_area_ids(None) == (None, None)


@pytest.mark.parametrize("good_if_up, high, low", [
    (True, TONE_GOOD, TONE_BAD),
    (False, TONE_BAD, TONE_GOOD),
    (None, TONE_NEUTRAL, TONE_NEUTRAL),
])
def test_extrema_tone(good_if_up, high, low):
    assert extrema_tone(good_if_up, HIGH) == high
    assert extrema_tone(good_if_up, LOW) == low


class TestPlanMarkers:

    def test_high_and_low_markers(self):
        plan = plan_markers(context({'a': 1, 'b': 9, 'c': 5}, good_if_up=True), centroid_of=centroid)
        markers = {m.extrema_kind: m for m in plan.markers[P]}
        assert markers[HIGH].area_id == 'b'
        assert markers[HIGH].key == 'stat:income:ZIP:high'
        assert markers[HIGH].tone == TONE_GOOD
        assert markers[LOW].area_id == 'a'
        assert markers[LOW].tone == TONE_BAD
        assert plan.markers[A] == []

    def test_single_area_gets_combined_marker(self):
        plan = plan_markers(context({'only': 4}), centroid_of=centroid)
        assert len(plan.markers[P]) == 1
        marker = plan.markers[P][0]
        assert marker.extrema_kind == COMBINED
        assert marker.key == 'only::combined::ZIP'
        assert marker.tone == f"{TONE_NEUTRAL}-{TONE_NEUTRAL}"
        assert [b.direction for b in plan.badges_for(P, 'only')] == [UP, DOWN]

    def test_hidden_when_extrema_off_or_no_stat(self):
        assert plan_markers(context({'a': 1}, extrema_visible=False)).is_empty
        assert plan_markers(context({'a': 1}, selected_stat_id=None)).is_empty

    def test_primary_hidden_at_high_zoom(self):
        settings = InteractionSettings()
        plan = plan_markers(context({'a': 1, 'b': 2}, zoom=settings.choropleth_hide_zoom), settings)
        assert plan.is_empty

    def test_aggregate_only_in_aggregate_mode_below_threshold(self):
        ctx = context({'a': 1}, {'c1': 3, 'c2': 7}, boundary_mode=BoundaryMode.AGGREGATE, zoom=7)
        plan = plan_markers(ctx, centroid_of=centroid)
        assert plan.markers[P] == []
        assert {m.area_id for m in plan.markers[A]} == {'c1', 'c2'}

        zoomed = plan_markers(context({'a': 1}, {'c1': 3}, boundary_mode=BoundaryMode.AGGREGATE, zoom=9.6))
        assert zoomed.is_empty

    def test_missing_centroid_skips_marker_keeps_badge(self):
        plan = plan_markers(context({'a': 1, 'b': 2}), centroid_of=lambda kind, area_id: None)
        assert plan.markers[P] == []
        assert plan.badges_for(P, 'b')[0].key == 'stat:income:ZIP:high'

    def test_poi_suppresses_stat_extremum_on_same_area(self):
        row = PointOfInterestRow(poi_key='poi-1', area_id='b', kind=P, stat_id='income',
                                 extrema_kind=HIGH, good_if_up=True, stat_name='Metro income',
                                 scope_key='Metro')
        plan = plan_markers(context({'a': 1, 'b': 9}, poi_rows=(row,)), centroid_of=centroid)
        badges = plan.badges_for(P, 'b')
        assert [b.key for b in badges] == ['poi-1']
        assert badges[0].pair_key == 'poi:ZIP:income:Metro'
        assert badges[0].tone == TONE_GOOD
        assert [b.key for b in plan.badges_for(P, 'a')] == ['stat:income:ZIP:low']

    def test_poi_rows_filtered_by_category_and_stat(self):
        rows = (
            PointOfInterestRow('p1', 'a', P, 'income', HIGH, category='Economy'),
            PointOfInterestRow('p2', 'b', P, 'income', LOW, category='Health'),
            PointOfInterestRow('p3', 'c', P, 'rent', HIGH, category='Economy'),
        )
        plan = plan_markers(context(selected_stat_id=None, poi_rows=rows, category='Economy'),
                            centroid_of=centroid)
        assert sorted(plan.badges[P]) == ['a', 'c']

        with_stat = plan_markers(context({}, poi_rows=rows, category='Economy'), centroid_of=centroid)
        assert sorted(with_stat.badges[P]) == ['a']

    def test_badges_sorted_up_first_then_label(self):
        rows = (
            PointOfInterestRow('p1', 'a', P, 's1', LOW, stat_name='Alpha'),
            PointOfInterestRow('p2', 'a', P, 's2', HIGH, stat_name='Zeta'),
            PointOfInterestRow('p3', 'a', P, 's3', HIGH, stat_name='Beta'),
        )
        plan = plan_markers(context(selected_stat_id=None, poi_rows=rows), centroid_of=centroid)
        assert [b.label for b in plan.badges_for(P, 'a')] == ['Beta', 'Zeta', 'Alpha']


class TestLinkedBadge:

    def test_high_links_to_low_of_same_kind(self):
        plan = plan_markers(context({'a': 1, 'b': 9}), centroid_of=centroid)
        kind, area_id, badge = find_linked_badge(plan, P, 'b', 'stat:income:ZIP:high')
        assert (kind, area_id) == (P, 'a')
        assert badge.direction == DOWN

    def test_falls_back_to_other_kind(self):
        plan = MarkerPlan()
        plan.badges[P]['z1'] = [MarkerBadge('k-up', 'Rent', TONE_NEUTRAL, UP, 'rent', 'pair')]
        plan.badges[A]['c1'] = [MarkerBadge('k-down', 'Rent', TONE_NEUTRAL, DOWN, 'rent', 'pair')]
        assert find_linked_badge(plan, P, 'z1', 'k-up')[:2] == (A, 'c1')

    def test_unknown_badge(self):
        plan = plan_markers(context({'a': 1, 'b': 9}), centroid_of=centroid)
        assert find_linked_badge(plan, P, 'b', 'nope') is None
        assert find_linked_badge(plan, P, None, 'stat:income:ZIP:high') is None
