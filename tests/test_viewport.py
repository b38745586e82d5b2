"""Tests for the chart viewport and pan/zoom controller."""

import math

import pytest

from gputop.viewport import FrameInput, ViewportTransform, ViewTransformController


def make_viewport(**kwargs) -> ViewportTransform:
    """100x50 plot units shown in a 100x50 screen frame at the origin."""
    defaults = dict(x_min=0.0, x_max=100.0, y_min=0.0, y_max=50.0, width=100.0, height=50.0)
    defaults.update(kwargs)
    return ViewportTransform(**defaults)


class TestViewportTransform:
    """Tests for coordinate conversion and bounds updates."""

    def test_value_from_position_inverts_y(self):
        """Screen top-left maps to (x_min, y_max); bottom-right to (x_max, y_min)."""
        vp = make_viewport()

        assert vp.value_from_position(0, 0) == (0.0, 50.0)
        assert vp.value_from_position(100, 50) == (100.0, 0.0)
        assert vp.value_from_position(25, 10) == (25.0, 40.0)

    def test_value_from_position_respects_frame_offset(self):
        vp = make_viewport(left=10.0, top=5.0)
        assert vp.value_from_position(10, 5) == (0.0, 50.0)

    def test_translate(self):
        vp = make_viewport()
        vp.translate(5.0, -2.0)
        assert vp.bounds == (5.0, 105.0, -2.0, 48.0)

    def test_zoom_around_center(self):
        """A factor of 2 halves the span around the center point."""
        vp = make_viewport()
        vp.zoom(2.0, 1.0, center=(50.0, 25.0))
        assert vp.bounds == (25.0, 75.0, 0.0, 50.0)

    def test_invalid_bounds_are_rejected(self):
        vp = make_viewport()

        assert vp.set_bounds(10.0, 10.0, 0.0, 1.0) is False
        assert vp.set_bounds(0.0, math.inf, 0.0, 1.0) is False
        assert vp.bounds == (0.0, 100.0, 0.0, 50.0)

    def test_set_frame_clamps_to_one(self):
        vp = make_viewport()
        vp.set_frame(0, 0, 0, -3)
        assert (vp.width, vp.height) == (1.0, 1.0)


class TestZoom:
    """Scroll input that maps to zoom."""

    def test_locked_y_holds_vertical_factor_at_one(self):
        """ctrl-to-zoom with ctrl held, scroll (0, 2), lock_y: only X zooms."""
        controller = ViewTransformController(
            make_viewport(ctrl_to_zoom=True, zoom_speed=1.0, lock_y=True)
        )

        factor_x, factor_y = controller.zoom_factors((0.0, 2.0))

        assert factor_y == 1.0
        assert factor_x == pytest.approx(math.exp(0.2))
        assert factor_x != 1.0

    def test_zoom_applies_around_pointer(self):
        vp = make_viewport(lock_y=True)
        controller = ViewTransformController(vp)

        controller.apply(FrameInput(scroll=(0.0, 2.0), pointer=(50.0, 25.0), ctrl=True))

        factor = math.exp(0.2)
        assert vp.x_min == pytest.approx(50.0 - 50.0 / factor)
        assert vp.x_max == pytest.approx(50.0 + 50.0 / factor)
        assert (vp.y_min, vp.y_max) == (0.0, 50.0)

    def test_delta_collapses_to_sum(self):
        controller = ViewTransformController(make_viewport())
        assert controller.zoom_factors((1.0, 2.0)) == controller.zoom_factors((3.0, 0.0))

    def test_zoom_without_pointer_is_ignored(self):
        vp = make_viewport()
        ViewTransformController(vp).apply(FrameInput(scroll=(0.0, 1.0), ctrl=True))
        assert vp.bounds == (0.0, 100.0, 0.0, 50.0)

    @pytest.mark.parametrize(
        ("ctrl_to_zoom", "ctrl", "zooms"),
        [
            (True, True, True),
            (True, False, False),
            (False, False, True),
            (False, True, False),
        ],
    )
    def test_ctrl_truth_table(self, ctrl_to_zoom, ctrl, zooms):
        """Zoom happens exactly when the ctrl state equals the ctrl-to-zoom flag."""
        vp = make_viewport(ctrl_to_zoom=ctrl_to_zoom)
        ViewTransformController(vp).apply(
            FrameInput(scroll=(0.0, 1.0), pointer=(50.0, 25.0), ctrl=ctrl)
        )

        width = vp.x_max - vp.x_min
        height = vp.y_max - vp.y_min
        if zooms:
            assert width < 100.0 and height < 50.0
        else:
            assert width == pytest.approx(100.0) and height == pytest.approx(50.0)


class TestScrollPan:
    """Scroll input that maps to panning."""

    @pytest.mark.parametrize(
        ("shift_to_horizontal", "shift", "expected"),
        [
            (False, False, (3.0, 0.0)),
            (False, True, (0.0, 3.0)),
            (True, True, (3.0, 0.0)),
            (True, False, (0.0, 3.0)),
        ],
    )
    def test_shift_truth_table(self, shift_to_horizontal, shift, expected):
        """Axes swap exactly when the shift state equals the shift-to-horizontal flag."""
        controller = ViewTransformController(make_viewport(shift_to_horizontal=shift_to_horizontal))
        assert controller.scroll_pan((0.0, 3.0), shift) == expected

    def test_scroll_speed_and_lock(self):
        controller = ViewTransformController(make_viewport(scroll_speed=2.5, lock_x=True))
        assert controller.scroll_pan((4.0, 0.0), shift=False) == (0.0, 10.0)
        assert controller.scroll_pan((0.0, 4.0), shift=False) == (0.0, 0.0)

    def test_pan_moves_whole_cells(self):
        """One notch pans one screen cell, whatever the plot span."""
        vp = make_viewport(x_max=5000.0, y_max=24576.0, width=40.0, height=10.0)
        controller = ViewTransformController(vp)

        controller.apply(FrameInput(scroll=(0.0, 1.0), pointer=(5.0, 5.0)))
        assert vp.x_min == pytest.approx(125.0)
        assert vp.x_max == pytest.approx(5125.0)

        controller.apply(FrameInput(scroll=(0.0, 1.0), pointer=(5.0, 5.0), shift=True))
        assert vp.y_min == pytest.approx(-2457.6)
        assert vp.y_max == pytest.approx(24576.0 - 2457.6)

    def test_pan_scales_with_scroll_speed(self):
        vp = make_viewport(scroll_speed=2.0)
        ViewTransformController(vp).apply(FrameInput(scroll=(0.0, 1.0)))
        assert vp.bounds == (2.0, 102.0, 0.0, 50.0)


class TestDrag:
    """Pointer drag panning."""

    def test_drag_moves_opposite_to_pointer(self):
        """Dragging right by 10 cells shifts the view left by 10 plot units (1:1 scale)."""
        vp = make_viewport()
        ViewTransformController(vp).apply(
            FrameInput(pointer=(60.0, 25.0), pointer_delta=(10.0, 0.0), hovered=True, dragging=True)
        )
        assert vp.bounds == (-10.0, 90.0, 0.0, 50.0)

    def test_drag_down_moves_view_up(self):
        """Screen y grows down, so dragging down raises the visible Y range."""
        vp = make_viewport()
        ViewTransformController(vp).apply(
            FrameInput(pointer_delta=(0.0, 5.0), hovered=True, dragging=True)
        )
        assert vp.bounds == (0.0, 100.0, 5.0, 55.0)

    def test_drag_respects_lock(self):
        vp = make_viewport(lock_x=True)
        ViewTransformController(vp).apply(
            FrameInput(pointer_delta=(10.0, 5.0), hovered=True, dragging=True)
        )
        assert (vp.x_min, vp.x_max) == (0.0, 100.0)
        assert (vp.y_min, vp.y_max) == (5.0, 55.0)

    def test_drag_requires_hover(self):
        vp = make_viewport()
        ViewTransformController(vp).apply(
            FrameInput(pointer_delta=(10.0, 5.0), hovered=False, dragging=True)
        )
        assert vp.bounds == (0.0, 100.0, 0.0, 50.0)
