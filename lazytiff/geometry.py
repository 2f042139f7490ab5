# geometry.py

"""Size, point, and area of image regions."""

from __future__ import annotations

from dataclasses import dataclass

__all__ = ['Area', 'Point', 'Size']


@dataclass(frozen=True)
class Size:
    """Width and height of image or region in pixels."""

    width: int
    height: int

    def __post_init__(self) -> None:
        if self.width < 0 or self.height < 0:
            msg = f'invalid size {self.width}x{self.height}'
            raise ValueError(msg)

    @property
    def pixelcount(self) -> int:
        """Number of pixels."""
        return self.width * self.height


@dataclass(frozen=True)
class Point:
    """Column and row of pixel."""

    x: int
    y: int

    def __post_init__(self) -> None:
        if self.x < 0 or self.y < 0:
            msg = f'invalid point ({self.x}, {self.y})'
            raise ValueError(msg)


@dataclass(frozen=True)
class Area:
    """Rectangular region of image.

    Attributes:
        origin: Top-left pixel of region.
        size: Width and height of region.

    Examples:
        >>> area = Area(Point(2, 1), Size(3, 4))
        >>> area.right, area.bottom
        (5, 5)
        >>> area.within(Size(5, 5))
        True
        >>> Area.full(Size(8, 2))
        Area(origin=Point(x=0, y=0), size=Size(width=8, height=2))

    """

    origin: Point
    size: Size

    @classmethod
    def full(cls, size: Size, /) -> Area:
        """Return area covering whole image of size."""
        return cls(Point(0, 0), size)

    @classmethod
    def fromtuple(cls, x: int, y: int, width: int, height: int, /) -> Area:
        """Return area from column, row, width, and height."""
        return cls(Point(x, y), Size(width, height))

    @property
    def right(self) -> int:
        """Column after last pixel of region."""
        return self.origin.x + self.size.width

    @property
    def bottom(self) -> int:
        """Row after last pixel of region."""
        return self.origin.y + self.size.height

    def within(self, size: Size, /) -> bool:
        """Return whether region lies inside image of size."""
        return self.right <= size.width and self.bottom <= size.height
