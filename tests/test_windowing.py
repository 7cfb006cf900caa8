import pytest

from windowing import (
    GridWindowSpec,
    ScrollTracker,
    WindowSpec,
    compute_grid_layout,
    compute_layout,
    compute_visible_range,
    compute_visible_row_range,
    visible_items,
)


def test_large_list_window():
    spec = WindowSpec(item_count=10000, item_size=80, viewport_size=400, scroll_offset=4000, overscan=5)
    layout = compute_layout(spec)
    assert (layout.visible_range.start_index, layout.visible_range.end_index) == (45, 60)
    assert layout.total_extent == 800000
    assert layout.render_offset == 45 * 80


def test_empty_list():
    layout = compute_layout(WindowSpec(item_count=0, item_size=80, viewport_size=400, scroll_offset=300))
    visible = layout.visible_range
    assert (visible.start_index, visible.end_index) == (0, 0)
    assert visible.is_empty
    assert list(visible.indices()) == []
    assert layout.total_extent == 0
    assert layout.render_offset == 0


def test_viewport_larger_than_content_covers_everything():
    visible = compute_visible_range(WindowSpec(item_count=4, item_size=50, viewport_size=1000))
    assert list(visible.indices()) == [0, 1, 2, 3]


def test_overscroll_is_clamped():
    visible = compute_visible_range(
        WindowSpec(item_count=100, item_size=10, viewport_size=50, scroll_offset=5000, overscan=5)
    )
    assert (visible.start_index, visible.end_index) == (90, 99)


def test_zero_viewport_at_the_very_end():
    visible = compute_visible_range(
        WindowSpec(item_count=10, item_size=10, viewport_size=0, scroll_offset=100, overscan=0)
    )
    assert visible.start_index <= visible.end_index == 9


@pytest.mark.parametrize("item_size", [0, -10])
def test_non_positive_item_size_rejected(item_size):
    with pytest.raises(ValueError):
        WindowSpec(item_count=10, item_size=item_size, viewport_size=100)


def test_negative_inputs_are_clamped():
    spec = WindowSpec(item_count=-3, item_size=10, viewport_size=-1, scroll_offset=-50, overscan=-2)
    assert (spec.item_count, spec.viewport_size, spec.scroll_offset, spec.overscan) == (0, 0, 0, 0)
    assert compute_visible_range(spec).is_empty


def test_estimated_size_overrides_item_size():
    layout = compute_layout(
        WindowSpec(item_count=100, item_size=80, estimated_item_size=20, viewport_size=100,
                   scroll_offset=200, overscan=0)
    )
    assert (layout.visible_range.start_index, layout.visible_range.end_index) == (10, 15)
    assert layout.total_extent == 2000
    assert layout.render_offset == 200


def test_window_invariants_hold_across_inputs():
    for item_count in (0, 1, 7, 100, 1001):
        for scroll_offset in (0, 13, 400, 99999):
            for overscan in (0, 3):
                spec = WindowSpec(item_count=item_count, item_size=37.5, viewport_size=300,
                                  scroll_offset=scroll_offset, overscan=overscan)
                layout = compute_layout(spec)
                visible = layout.visible_range
                assert layout.total_extent == item_count * 37.5
                assert layout.render_offset == visible.start_index * 37.5
                if item_count == 0:
                    assert len(visible) == 0
                else:
                    assert 0 <= visible.start_index <= visible.end_index < item_count
                assert compute_layout(spec) == layout


def test_grid_geometry():
    spec = GridWindowSpec(item_count=10, item_width=100, item_height=50, gap=10,
                          container_width=330, viewport_size=100, overscan=0)
    assert spec.columns == 3
    assert spec.rows == 4
    layout = compute_grid_layout(spec)
    assert layout.total_extent == 4 * 60 - 10
    assert (layout.visible_range.start_row, layout.visible_range.end_row) == (0, 2)
    assert layout.visible_range.indices() == list(range(9))


def test_grid_last_row_is_partial():
    spec = GridWindowSpec(item_count=10, item_width=100, item_height=50, gap=10,
                          container_width=330, viewport_size=100, scroll_offset=130, overscan=0)
    layout = compute_grid_layout(spec)
    assert (layout.visible_range.start_row, layout.visible_range.end_row) == (2, 3)
    assert layout.visible_range.indices() == [6, 7, 8, 9]
    assert layout.render_offset == 120


def test_grid_column_fallbacks():
    unknown_width = GridWindowSpec(item_count=5, item_width=300, item_height=200, viewport_size=400)
    assert unknown_width.columns == 3
    narrow = GridWindowSpec(item_count=5, item_width=300, item_height=200, viewport_size=400, container_width=50)
    assert narrow.columns == 1


def test_empty_grid():
    spec = GridWindowSpec(item_count=0, item_width=300, item_height=200, viewport_size=400, container_width=1000)
    layout = compute_grid_layout(spec)
    assert compute_visible_row_range(spec).is_empty
    assert layout.visible_range.indices() == []
    assert layout.total_extent == 0


def test_grid_rejects_bad_dimensions():
    with pytest.raises(ValueError):
        GridWindowSpec(item_count=5, item_width=0, item_height=200, viewport_size=400)
    with pytest.raises(ValueError):
        GridWindowSpec(item_count=5, item_width=100, item_height=200, viewport_size=400, gap=-1)


def test_visible_items_keys_and_positions():
    items = [{"id": f"c{i}"} for i in range(5)] + [{"name": "no id"}]
    layout = compute_layout(WindowSpec(item_count=len(items), item_size=10, viewport_size=100, overscan=0))
    rendered = visible_items(items, layout)
    assert [r.key for r in rendered] == ["c0", "c1", "c2", "c3", "c4", 5]

    grid = compute_grid_layout(GridWindowSpec(item_count=5, item_width=10, item_height=10, gap=0,
                                              container_width=20, viewport_size=100))
    cells = visible_items(list("abcde"), grid, key=lambda item, index: item)
    assert [(c.key, c.row, c.col) for c in cells] == [
        ("a", 0, 0), ("b", 0, 1), ("c", 1, 0), ("d", 1, 1), ("e", 2, 0),
    ]


def test_scroll_tracker(scheduler):
    tracker = ScrollTracker(WindowSpec(item_count=10000, item_size=80, viewport_size=400),
                            timer_factory=scheduler.timer)
    tracker.scroll_to(4000)
    assert tracker.is_scrolling
    layout = tracker.layout()
    assert (layout.visible_range.start_index, layout.visible_range.end_index) == (45, 60)

    scheduler.advance(100)
    tracker.scroll_to(4080)
    scheduler.advance(100)
    assert tracker.is_scrolling
    scheduler.advance(50)
    assert not tracker.is_scrolling

    tracker.resize(800)
    assert tracker.layout().visible_range.end_index == 66
    tracker.scroll_to(-20)
    assert tracker.spec.scroll_offset == 0
    tracker.close()
    scheduler.advance(1000)
    assert not tracker.is_scrolling


def test_scroll_tracker_grid(scheduler):
    tracker = ScrollTracker(GridWindowSpec(item_count=10, item_width=100, item_height=50, gap=10,
                                           container_width=330, viewport_size=100, overscan=0),
                            timer_factory=scheduler.timer)
    tracker.resize(100, container_width=550)
    assert tracker.spec.columns == 5
    assert [v.index for v in tracker.items(list(range(10)))] == list(range(10))
    tracker.close()


@pytest.mark.parametrize("item_count", [0, 1, 2, 7, 100, 1001])
@pytest.mark.parametrize("container_width", [None, 50, 330, 1280])
@pytest.mark.parametrize("scroll_offset", [0, 45, 600, 10 ** 7])
def test_grid_invariants_hold_across_inputs(item_count, container_width, scroll_offset):
    for overscan in (0, 2):
        spec = GridWindowSpec(item_count=item_count, item_width=100, item_height=50, gap=10,
                              container_width=container_width, viewport_size=240,
                              scroll_offset=scroll_offset, overscan=overscan)
        layout = compute_grid_layout(spec)
        visible = layout.visible_range

        assert compute_grid_layout(spec) == layout
        assert visible.rows == spec.rows
        if item_count == 0:
            assert layout.total_extent == 0
            assert visible.indices() == []
            continue
        assert layout.total_extent == spec.rows * (50 + 10) - 10
        assert 0 <= visible.start_row <= visible.end_row < spec.rows
        assert layout.render_offset == visible.start_row * 60
        indices = visible.indices()
        assert indices and all(0 <= i < item_count for i in indices)
        if scroll_offset == 10 ** 7:
            # overscroll pins the window to the last row
            assert visible.end_row == spec.rows - 1
            assert indices[-1] == item_count - 1
