"""Chart viewport state and the pan/zoom input controller.

Screen coordinates grow right and down; plot coordinates grow right and up.
"""

import math
from dataclasses import dataclass


@dataclass(slots=True)
class ViewportTransform:
    """Visible plot bounds, the screen frame they map onto, and input settings."""

    x_min: float = 0.0
    x_max: float = 1.0
    y_min: float = 0.0
    y_max: float = 1.0
    lock_x: bool = False
    lock_y: bool = False
    zoom_speed: float = 1.0
    scroll_speed: float = 1.0
    ctrl_to_zoom: bool = True
    shift_to_horizontal: bool = False
    # Screen frame occupied by the chart
    left: float = 0.0
    top: float = 0.0
    width: float = 1.0
    height: float = 1.0

    @property
    def bounds(self) -> tuple[float, float, float, float]:
        return (self.x_min, self.x_max, self.y_min, self.y_max)

    def set_bounds(self, x_min: float, x_max: float, y_min: float, y_max: float) -> bool:
        """Replace the bounds if they are finite and non-empty. Return whether applied."""
        values = (x_min, x_max, y_min, y_max)
        if not all(math.isfinite(v) for v in values) or x_min >= x_max or y_min >= y_max:
            return False
        self.x_min, self.x_max, self.y_min, self.y_max = values
        return True

    def set_frame(self, left: float, top: float, width: float, height: float) -> None:
        self.left = left
        self.top = top
        self.width = max(1.0, width)
        self.height = max(1.0, height)

    def dvalue_dpos(self) -> tuple[float, float]:
        """Plot units per screen unit along each axis (y is inverted)."""
        return (
            (self.x_max - self.x_min) / self.width,
            -(self.y_max - self.y_min) / self.height,
        )

    def value_from_position(self, x: float, y: float) -> tuple[float, float]:
        """Convert a screen position to plot coordinates."""
        dx, dy = self.dvalue_dpos()
        return (
            self.x_min + (x - self.left) * dx,
            self.y_max + (y - self.top) * dy,
        )

    def translate(self, dx: float, dy: float) -> None:
        """Shift the bounds by a plot-space delta."""
        self.set_bounds(self.x_min + dx, self.x_max + dx, self.y_min + dy, self.y_max + dy)

    def zoom(self, factor_x: float, factor_y: float, center: tuple[float, float]) -> None:
        """Scale the bounds around a plot-space center; factors > 1 zoom in."""
        cx, cy = center
        self.set_bounds(
            cx + (self.x_min - cx) / factor_x,
            cx + (self.x_max - cx) / factor_x,
            cy + (self.y_min - cy) / factor_y,
            cy + (self.y_max - cy) / factor_y,
        )


@dataclass(slots=True, frozen=True)
class FrameInput:
    """Pointer state gathered for one frame."""

    scroll: tuple[float, float] | None = None
    pointer: tuple[float, float] | None = None  # Screen position
    pointer_delta: tuple[float, float] = (0.0, 0.0)  # Screen movement since last frame
    hovered: bool = False
    dragging: bool = False
    ctrl: bool = False
    shift: bool = False


class ViewTransformController:
    """
    Turns scroll, drag and modifier input into pan/zoom of a viewport.

    The modifier checks compare against the configured flags rather than
    testing the modifier alone, so each flag inverts which gesture zooms
    and which axis a plain scroll pans.
    """

    def __init__(self, viewport: ViewportTransform) -> None:
        self.viewport = viewport

    def zoom_factors(self, scroll: tuple[float, float]) -> tuple[float, float]:
        """Per-axis zoom factors for a scroll delta, with locked axes held at 1."""
        vp = self.viewport
        s = scroll[0] + scroll[1]
        factor = math.exp(s * vp.zoom_speed / 10)
        return (
            1.0 if vp.lock_x else factor,
            1.0 if vp.lock_y else factor,
        )

    def scroll_pan(self, scroll: tuple[float, float], shift: bool) -> tuple[float, float]:
        """Screen-space translation for a scroll delta, in cells."""
        vp = self.viewport
        dx, dy = scroll
        if shift == vp.shift_to_horizontal:
            dx, dy = dy, dx
        if vp.lock_x:
            dx = 0.0
        if vp.lock_y:
            dy = 0.0
        return (dx * vp.scroll_speed, dy * vp.scroll_speed)

    def drag_pan(self, pointer_delta: tuple[float, float]) -> tuple[float, float]:
        """Plot-space translation that keeps the dragged point under the pointer."""
        vp = self.viewport
        per_x, per_y = vp.dvalue_dpos()
        dx = -pointer_delta[0] * per_x
        dy = -pointer_delta[1] * per_y
        if vp.lock_x:
            dx = 0.0
        if vp.lock_y:
            dy = 0.0
        return (dx, dy)

    def apply(self, frame: FrameInput) -> None:
        """Apply one frame of input to the viewport."""
        vp = self.viewport

        if frame.scroll is not None:
            if frame.ctrl == vp.ctrl_to_zoom:
                if frame.pointer is not None:
                    factor_x, factor_y = self.zoom_factors(frame.scroll)
                    vp.zoom(factor_x, factor_y, vp.value_from_position(*frame.pointer))
            else:
                cells_x, cells_y = self.scroll_pan(frame.scroll, frame.shift)
                per_x, per_y = vp.dvalue_dpos()
                vp.translate(cells_x * per_x, cells_y * per_y)

        if frame.hovered and frame.dragging:
            vp.translate(*self.drag_pan(frame.pointer_delta))
