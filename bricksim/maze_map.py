"""
Maze map

Grid of square cells in map coordinates (inches):
- the maze's top-left corner is the origin, x grows to the east
- y grows to the north, so every point inside the maze has y <= 0
- cells are addressed as (col, row), both 1-based, row 1 on the north edge

Each cell side carries three codes: a wall type, a stop-strip type and a
load-zone type. Codes live in flat numpy arrays of shape (width*height, 4),
indexed by cell then side.
"""

import csv
import math
from dataclasses import dataclass
from enum import IntEnum
from typing import Iterable, Iterator, List, Optional, Sequence, Tuple

import numpy as np

from . import config


class Side(IntEnum):
    """Cell side"""
    NORTH = 1
    SOUTH = 2
    EAST = 3
    WEST = 4


class WallType(IntEnum):
    UNKNOWN = 0
    PRESENT = 1
    ABSENT = 2


class ZoneType(IntEnum):
    """Floor marking along a cell side (also used for stop strips)"""
    UNKNOWN = 0
    NORMAL = 1
    PICKUP = 2
    DROPOFF = 3
    STOP = 4


OPPOSITE_SIDE = {
    Side.NORTH: Side.SOUTH,
    Side.SOUTH: Side.NORTH,
    Side.EAST: Side.WEST,
    Side.WEST: Side.EAST,
}

# (dcol, drow) to reach the neighbour across each side
NEIGHBOUR_OFFSET = {
    Side.NORTH: (0, -1),
    Side.SOUTH: (0, 1),
    Side.EAST: (1, 0),
    Side.WEST: (-1, 0),
}

# Table layout: row, col, height, width, cell_size, then 4 walls, 4 stops, 4 zones
TABLE_COLUMNS = 17
_WALL_COLUMNS = slice(5, 9)
_STOP_COLUMNS = slice(9, 13)
_ZONE_COLUMNS = slice(13, 17)


@dataclass(frozen=True)
class Cell:
    """Read-only view of one maze cell."""
    col: int
    row: int
    size: float
    walls: Tuple[WallType, WallType, WallType, WallType]
    stops: Tuple[ZoneType, ZoneType, ZoneType, ZoneType]
    zones: Tuple[ZoneType, ZoneType, ZoneType, ZoneType]

    @property
    def origin(self) -> Tuple[float, float]:
        """North-west corner in map coordinates."""
        return ((self.col - 1) * self.size, -(self.row - 1) * self.size)

    def wall(self, side: Side) -> WallType:
        return self.walls[side - 1]


def _ray_segment_intersection(
    ray_x: float, ray_y: float,
    ray_dx: float, ray_dy: float,
    seg_x1: float, seg_y1: float,
    seg_x2: float, seg_y2: float,
    max_range: float
) -> Optional[float]:
    """
    Distance along a ray to a line segment.

    Solves ray_origin + t * ray_dir = seg_start + s * seg_dir with Cramer's
    rule, accepting 0 <= t <= max_range and 0 <= s <= 1.

    Args:
        ray_x, ray_y: Ray origin
        ray_dx, ray_dy: Ray direction (unit vector)
        seg_x1, seg_y1: Segment start point
        seg_x2, seg_y2: Segment end point
        max_range: Ray length

    Returns:
        Distance to the intersection, or None when the ray misses
    """
    seg_dx = seg_x2 - seg_x1
    seg_dy = seg_y2 - seg_y1
    dx_to_seg = seg_x1 - ray_x
    dy_to_seg = seg_y1 - ray_y

    denom = ray_dx * seg_dy - ray_dy * seg_dx
    if abs(denom) < 1e-10:
        return None

    t = (dx_to_seg * seg_dy - dy_to_seg * seg_dx) / denom
    s = (dx_to_seg * ray_dy - dy_to_seg * ray_dx) / denom

    epsilon = 1e-9
    if -epsilon <= t <= max_range and -epsilon <= s <= 1 + epsilon:
        return max(0.0, t)
    return None


class Maze:
    """
    Rectangular maze of width x height square cells.

    All codes start UNKNOWN; use bordered() for a ready-to-drive layout or
    from_table() / load_table() to load a saved one.
    """

    def __init__(self, height: int = config.DEFAULT_MAZE_HEIGHT,
                 width: int = config.DEFAULT_MAZE_WIDTH,
                 cell_size: float = config.DEFAULT_CELL_SIZE):
        if height < 1 or width < 1:
            raise ValueError(f"maze must have at least one cell, got {width}x{height}")
        if cell_size <= 0:
            raise ValueError(f"cell size must be positive, got {cell_size}")

        self.height = int(height)
        self.width = int(width)
        self.cell_size = float(cell_size)

        count = self.width * self.height
        self.walls = np.zeros((count, 4), dtype=np.int8)
        self.stops = np.zeros((count, 4), dtype=np.int8)
        self.zones = np.zeros((count, 4), dtype=np.int8)

    # ==================== Construction helpers ====================

    @classmethod
    def bordered(cls, height: int = config.DEFAULT_MAZE_HEIGHT,
                 width: int = config.DEFAULT_MAZE_WIDTH,
                 cell_size: float = config.DEFAULT_CELL_SIZE) -> 'Maze':
        """Open maze: walls on the outer border only, normal floor everywhere."""
        maze = cls(height, width, cell_size)
        maze.walls[:] = WallType.ABSENT
        maze.stops[:] = ZoneType.NORMAL
        maze.zones[:] = ZoneType.NORMAL
        for col in range(1, maze.width + 1):
            maze.set_wall_type(col, 1, Side.NORTH, WallType.PRESENT)
            maze.set_wall_type(col, maze.height, Side.SOUTH, WallType.PRESENT)
        for row in range(1, maze.height + 1):
            maze.set_wall_type(1, row, Side.WEST, WallType.PRESENT)
            maze.set_wall_type(maze.width, row, Side.EAST, WallType.PRESENT)
        return maze

    @classmethod
    def from_table(cls, rows: Iterable[Sequence[Optional[float]]]) -> 'Maze':
        """
        Build a maze from table rows.

        Each row holds: row, col, height, width, cell_size, walls N/S/E/W,
        stops N/S/E/W, zones N/S/E/W. Only the first row's height, width and
        cell_size are read. A None entry leaves that code unchanged.

        Raises:
            ValueError: empty table, short row or missing dimensions
        """
        rows = [list(r) for r in rows]
        if not rows:
            raise ValueError("maze table is empty")

        first = rows[0]
        if len(first) < 5 or any(v is None for v in first[2:5]):
            raise ValueError("first maze table row must carry height, width and cell size")
        maze = cls(int(first[2]), int(first[3]), float(first[4]))

        for entry in rows:
            if len(entry) < TABLE_COLUMNS:
                raise ValueError(f"maze table row has {len(entry)} columns, expected {TABLE_COLUMNS}")
            row, col = int(entry[0]), int(entry[1])
            for side, code in zip(Side, entry[_WALL_COLUMNS]):
                if code is not None:
                    maze.set_wall_type(col, row, side, int(code))
            for side, code in zip(Side, entry[_STOP_COLUMNS]):
                if code is not None:
                    maze.set_stop_type(col, row, side, int(code))
            for side, code in zip(Side, entry[_ZONE_COLUMNS]):
                if code is not None:
                    maze.set_zone_type(col, row, side, int(code))
        return maze

    @classmethod
    def load_table(cls, path: str) -> 'Maze':
        """Load a maze from a CSV file in the from_table() layout; text rows are skipped."""
        rows: List[List[Optional[float]]] = []
        with open(path, newline='') as f:
            for record in csv.reader(f):
                if not record or not _is_number(record[0]):
                    continue
                values = [float(v) if v.strip() else None for v in record[:TABLE_COLUMNS]]
                values.extend([None] * (TABLE_COLUMNS - len(values)))
                rows.append(values)
        return cls.from_table(rows)

    def to_table(self) -> List[List[float]]:
        """Inverse of from_table()."""
        rows = []
        for row in range(1, self.height + 1):
            for col in range(1, self.width + 1):
                index = self._index(col, row)
                rows.append([row, col, self.height, self.width, self.cell_size]
                            + self.walls[index].tolist()
                            + self.stops[index].tolist()
                            + self.zones[index].tolist())
        return rows

    # ==================== Cell addressing ====================

    def contains_cell(self, col: int, row: int) -> bool:
        return 1 <= col <= self.width and 1 <= row <= self.height

    def _index(self, col: int, row: int) -> int:
        if not self.contains_cell(col, row):
            raise IndexError(f"cell ({col}, {row}) outside {self.width}x{self.height} maze")
        return (row - 1) * self.width + (col - 1)

    def loc_from_pos(self, x: float, y: float) -> Tuple[int, int]:
        """Cell (col, row) containing map point (x, y); may lie outside the maze."""
        col = math.floor(x / self.cell_size) + 1
        row = -math.ceil(y / self.cell_size) + 1
        return col, row

    def contains_point(self, x: float, y: float) -> bool:
        return 0 < x < self.width * self.cell_size and -self.height * self.cell_size < y < 0

    def cell(self, col: int, row: int) -> Cell:
        index = self._index(col, row)
        return Cell(
            col=col, row=row, size=self.cell_size,
            walls=tuple(WallType(int(v)) for v in self.walls[index]),
            stops=tuple(ZoneType(int(v)) for v in self.stops[index]),
            zones=tuple(ZoneType(int(v)) for v in self.zones[index]),
        )

    def cells(self) -> Iterator[Cell]:
        for row in range(1, self.height + 1):
            for col in range(1, self.width + 1):
                yield self.cell(col, row)

    def neighbour(self, col: int, row: int, side: Side) -> Optional[Tuple[int, int]]:
        dcol, drow = NEIGHBOUR_OFFSET[Side(side)]
        ncol, nrow = col + dcol, row + drow
        if self.contains_cell(ncol, nrow):
            return ncol, nrow
        return None

    # ==================== Getters ====================

    def get_wall_type(self, col: int, row: int, side: Side) -> WallType:
        return WallType(int(self.walls[self._index(col, row), Side(side) - 1]))

    def get_stop_type(self, col: int, row: int, side: Side) -> ZoneType:
        return ZoneType(int(self.stops[self._index(col, row), Side(side) - 1]))

    def get_zone_type(self, col: int, row: int, side: Side) -> ZoneType:
        return ZoneType(int(self.zones[self._index(col, row), Side(side) - 1]))

    # ==================== Setters ====================

    def set_wall_type(self, col: int, row: int, side: Side, wall_type: int) -> None:
        """
        Set a wall code, mirrored onto the neighbouring cell.

        A present wall cannot carry a stop strip or load zone, so both sides
        of the edge are reset to NORMAL floor.
        """
        side = Side(side)
        wall_type = WallType(wall_type)
        self._set_wall_side(col, row, side, wall_type)
        other = self.neighbour(col, row, side)
        if other is not None:
            self._set_wall_side(other[0], other[1], OPPOSITE_SIDE[side], wall_type)

    def _set_wall_side(self, col: int, row: int, side: Side, wall_type: WallType) -> None:
        index = self._index(col, row)
        self.walls[index, side - 1] = wall_type
        if wall_type == WallType.PRESENT:
            self.stops[index, side - 1] = ZoneType.NORMAL
            self.zones[index, side - 1] = ZoneType.NORMAL

    def set_stop_type(self, col: int, row: int, side: Side, stop_type: int) -> None:
        """Set a stop-strip code, mirrored onto the neighbouring cell."""
        side = Side(side)
        stop_type = ZoneType(stop_type)
        self.stops[self._index(col, row), side - 1] = stop_type
        other = self.neighbour(col, row, side)
        if other is not None:
            self.stops[self._index(*other), OPPOSITE_SIDE[side] - 1] = stop_type

    def set_zone_type(self, col: int, row: int, side: Side, zone_type: int) -> None:
        """
        Set a load-zone code on one side of one cell (not mirrored).

        A cell holds at most one pickup or dropoff zone: setting either
        first returns all four sides to NORMAL.
        """
        side = Side(side)
        zone_type = ZoneType(zone_type)
        index = self._index(col, row)
        if zone_type in (ZoneType.PICKUP, ZoneType.DROPOFF):
            self.zones[index, :] = ZoneType.NORMAL
        self.zones[index, side - 1] = zone_type

    # ==================== Geometry ====================

    def wall_segment(self, col: int, row: int, side: Side) -> Tuple[float, float, float, float]:
        """Endpoints (x1, y1, x2, y2) of a cell side."""
        cs = self.cell_size
        west, east = (col - 1) * cs, col * cs
        north, south = -(row - 1) * cs, -row * cs
        side = Side(side)
        if side == Side.NORTH:
            return west, north, east, north
        if side == Side.SOUTH:
            return west, south, east, south
        if side == Side.EAST:
            return east, north, east, south
        return west, north, west, south

    def get_closest_wall_distance(self, x: float, y: float, direction: float) -> Tuple[float, float]:
        """
        Ray cast against every present wall.

        Args:
            x, y: Ray origin in map coordinates
            direction: Ray heading in degrees

        Returns:
            (distance_cm, incidence_deg): distance to the nearest wall in cm
            (ULTRASONIC_MAX when nothing is hit) and the angle between the
            ray and that wall, folded into [0, 90]
        """
        ray_dx = math.cos(math.radians(direction))
        ray_dy = math.sin(math.radians(direction))

        distance = config.ULTRASONIC_MAX
        angle = 0.0
        for index, side_index in zip(*np.nonzero(self.walls == WallType.PRESENT)):
            row, col = divmod(int(index), self.width)
            x1, y1, x2, y2 = self.wall_segment(col + 1, row + 1, Side(side_index + 1))
            hit = _ray_segment_intersection(x, y, ray_dx, ray_dy, x1, y1, x2, y2, config.RAY_LENGTH)
            if hit is None:
                continue
            hit_cm = config.CM_PER_INCH * hit
            if hit_cm < distance:
                distance = hit_cm
                angle = math.degrees(math.atan2(y1 - y2, x1 - x2)) - direction

        angle = angle % 180.0
        if angle > 90.0:
            angle = 180.0 - angle
        return distance, angle

    def does_line_segment_intersect_wall(self, x1: float, y1: float, x2: float, y2: float) -> bool:
        """
        True when the segment crosses a present wall or leaves the maze.

        Only the first cell edge crossed from (x1, y1) toward (x2, y2) is
        examined, so segments should be shorter than a cell.
        """
        extent_x = self.width * self.cell_size
        extent_y = -self.height * self.cell_size
        for px, py in ((x1, y1), (x2, y2)):
            if px <= 0 or px >= extent_x or py >= 0 or py <= extent_y:
                return True

        cx1, cy1 = self.loc_from_pos(x1, y1)
        cx2, cy2 = self.loc_from_pos(x2, y2)
        if (cx1, cy1) == (cx2, cy2):
            return False

        if cx2 < cx1:
            xwall = (cx1 - 1) * self.cell_size
            ywall = (xwall - x1) * (y2 - y1) / (x2 - x1) + y1
            col, row = self.loc_from_pos(x1, ywall)
            return self.get_wall_type(col, row, Side.WEST) == WallType.PRESENT
        if cx2 == cx1:
            side = Side.SOUTH if cy1 < cy2 else Side.NORTH
            return self.get_wall_type(cx1, cy1, side) == WallType.PRESENT
        xwall = cx1 * self.cell_size
        ywall = (xwall - x1) * (y2 - y1) / (x2 - x1) + y1
        col, row = self.loc_from_pos(x1, ywall)
        return self.get_wall_type(col, row, Side.EAST) == WallType.PRESENT

    def _in_strip(self, codes: np.ndarray, code: ZoneType, x: float, y: float, width: float) -> bool:
        """Is (x, y) within `width` of a side of its cell marked `code`?"""
        col, row = self.loc_from_pos(x, y)
        if not self.contains_cell(col, row):
            return False
        cs = self.cell_size
        sides = codes[self._index(col, row)]
        for side in Side:
            if sides[side - 1] != code:
                continue
            if side == Side.NORTH and y > -(row - 1) * cs - width:
                return True
            if side == Side.SOUTH and y < -row * cs + width:
                return True
            if side == Side.EAST and x > col * cs - width:
                return True
            if side == Side.WEST and x < (col - 1) * cs + width:
                return True
        return False

    def is_stop(self, x: float, y: float) -> bool:
        return self._in_strip(self.stops, ZoneType.STOP, x, y, config.STOP_STRIP_WIDTH / 2)

    def is_pickup(self, x: float, y: float) -> bool:
        return self._in_strip(self.zones, ZoneType.PICKUP, x, y, config.ZONE_WIDTH)

    def is_dropoff(self, x: float, y: float) -> bool:
        return self._in_strip(self.zones, ZoneType.DROPOFF, x, y, config.ZONE_WIDTH)

    def floor_marking(self, x: float, y: float) -> ZoneType:
        """Marking under a point; stop strips take precedence over load zones."""
        if self.is_stop(x, y):
            return ZoneType.STOP
        if self.is_pickup(x, y):
            return ZoneType.PICKUP
        if self.is_dropoff(x, y):
            return ZoneType.DROPOFF
        return ZoneType.NORMAL


def _is_number(text: str) -> bool:
    try:
        float(text)
    except ValueError:
        return False
    return True
