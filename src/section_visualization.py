"""
Display configuration for section contours.

Maps a set of intersection segments plus user display options to the plain
material settings a renderer needs. The pass is O(n) in the number of
segments: each entry is only type-checked, never measured.
"""
import logging
import math
import re
from dataclasses import asdict, dataclass, fields, replace
from typing import Optional, Sequence

from geometry_primitives import Vector3

logger = logging.getLogger(__name__)

DEFAULT_HIGHLIGHT_COLOR = "#ffff00"
HIGHLIGHT_MIN_LINE_WIDTH = 3.0

_HEX_COLOR_RE = re.compile(r"#[0-9a-fA-F]{6}")


@dataclass(frozen=True)
class VisualizationConfig:
    """Line material settings consumed by the renderer."""
    visible: bool = True
    line_width: float = 2.0
    color: str = "#00ff00"
    opacity: float = 1.0
    highlight: bool = False

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class VisualizationOptions:
    """User overrides; None means "not given, keep the default"."""
    color: Optional[str] = None
    line_width: Optional[float] = None
    opacity: Optional[float] = None
    highlight: bool = False
    highlight_color: Optional[str] = None


def is_valid_color(color) -> bool:
    """True for ``#rrggbb`` hex strings."""
    return isinstance(color, str) and bool(_HEX_COLOR_RE.fullmatch(color))


def valid_lines(lines: Optional[Sequence]) -> list:
    """Entries of *lines* that are exactly two Vector3 endpoints."""
    if not lines:
        return []
    return [
        line for line in lines
        if isinstance(line, (tuple, list))
        and len(line) == 2
        and isinstance(line[0], Vector3)
        and isinstance(line[1], Vector3)
    ]


class SectionVisualizationService:
    """Derives a VisualizationConfig from section segments and options."""

    def __init__(self, default_config: Optional[VisualizationConfig] = None):
        self._default = default_config or VisualizationConfig()

    def get_visualization_config(
        self,
        lines: Optional[Sequence],
        options: Optional[VisualizationOptions] = None,
    ) -> VisualizationConfig:
        """Build the display config for *lines*.

        Args:
            lines: Segments, normally IntersectionResult.lines. Malformed
                entries are ignored.
            options: Display overrides.

        Returns:
            A hidden config when there is nothing valid to draw, otherwise the
            defaults with the validated overrides applied.
        """
        if not lines:
            return replace(self._default, visible=False, line_width=0.0)

        usable = valid_lines(lines)
        if len(usable) != len(lines):
            logger.debug(
                "Ignored %d malformed section lines", len(lines) - len(usable),
            )
        if not usable:
            return replace(self._default, visible=False)

        if options is None:
            options = VisualizationOptions()

        color = self._default.color
        line_width = self._default.line_width
        opacity = self._default.opacity
        highlight = self._default.highlight

        if options.color is not None and is_valid_color(options.color):
            color = options.color
        if _is_number(options.line_width):
            line_width = max(0.0, float(options.line_width))
        if _is_number(options.opacity):
            opacity = max(0.0, min(1.0, float(options.opacity)))

        if options.highlight:
            highlight = True
            line_width = max(line_width, HIGHLIGHT_MIN_LINE_WIDTH)
            if is_valid_color(options.highlight_color):
                color = options.highlight_color
            else:
                color = DEFAULT_HIGHLIGHT_COLOR

        return VisualizationConfig(
            visible=True,
            line_width=line_width,
            color=color,
            opacity=opacity,
            highlight=highlight,
        )

    def get_default_config(self) -> VisualizationConfig:
        return self._default

    def set_default_config(self, **overrides) -> None:
        """Replace selected default fields.

        Raises:
            TypeError: unknown field name.
            ValueError: invalid color, negative line width or opacity outside
                [0, 1].
        """
        known = {f.name for f in fields(VisualizationConfig)}
        unknown = set(overrides) - known
        if unknown:
            raise TypeError(f"Unknown visualization fields: {sorted(unknown)}")

        if "color" in overrides and not is_valid_color(overrides["color"]):
            raise ValueError(f"Invalid color: {overrides['color']!r}")
        if "line_width" in overrides and not (
            _is_number(overrides["line_width"]) and overrides["line_width"] >= 0
        ):
            raise ValueError(f"Invalid line width: {overrides['line_width']!r}")
        if "opacity" in overrides and not (
            _is_number(overrides["opacity"]) and 0.0 <= overrides["opacity"] <= 1.0
        ):
            raise ValueError(f"Invalid opacity: {overrides['opacity']!r}")

        self._default = replace(self._default, **overrides)
        logger.info("Section visualization defaults updated: %s", overrides)


def _is_number(value) -> bool:
    # NaN/inf overrides are ignored; bool is not a width
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
    )
