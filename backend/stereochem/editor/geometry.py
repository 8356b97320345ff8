"""
View transform and hit-testing for the structure editor.

Everything here works in model space: pointer positions are mapped through
the view transform first, and screen-space tolerances are divided by the
current scale so that zooming never changes what a gesture hits.
"""
import math
from dataclasses import dataclass
from typing import Optional, Tuple
from stereochem.models import Atom, Bond, Molecule

HIT_RADIUS = 18.0          # screen px
BOND_HIT_DISTANCE = 10.0   # screen px
BOND_LENGTH = 55.0         # model units
SNAP_STEP = math.pi / 3    # 60 degrees
SNAP_MAX_BONDS = 4
ZOOM_FACTOR = 1.2
MIN_SCALE = 0.2
MAX_SCALE = 5.0

Point = Tuple[float, float]

@dataclass
class ViewTransform:
    scale: float = 1.0
    offset_x: float = 0.0
    offset_y: float = 0.0
    # Buffer pixels per CSS pixel when the canvas is displayed at a different size
    pixel_ratio_x: float = 1.0
    pixel_ratio_y: float = 1.0

    def to_model(self, device_x: float, device_y: float) -> Point:
        raw_x = device_x * self.pixel_ratio_x
        raw_y = device_y * self.pixel_ratio_y
        return (raw_x - self.offset_x) / self.scale, (raw_y - self.offset_y) / self.scale

    def to_screen(self, x: float, y: float) -> Point:
        """Model point -> canvas buffer pixels."""
        return x * self.scale + self.offset_x, y * self.scale + self.offset_y

    def pan_by(self, dx: float, dy: float):
        self.offset_x += dx
        self.offset_y += dy

    def zoom(self, factor: float):
        self.scale = clamp_scale(self.scale * factor)

def clamp_scale(scale: float) -> float:
    return max(MIN_SCALE, min(MAX_SCALE, scale))

def distance(a: Point, b: Point) -> float:
    return math.hypot(a[0] - b[0], a[1] - b[1])

def atom_at(molecule: Molecule, point: Point, scale: float) -> Optional[Atom]:
    """First atom (in molecule order) within the scaled hit radius of `point`."""
    radius = HIT_RADIUS / scale
    for atom in molecule.atoms:
        if distance((atom.x, atom.y), point) < radius:
            return atom
    return None

def segment_distance(point: Point, start: Point, end: Point) -> Optional[float]:
    """
    Perpendicular distance from `point` to the segment start-end, or None when
    the projection falls outside the segment (or the segment has no length).
    """
    dx = end[0] - start[0]
    dy = end[1] - start[1]
    length_sq = dx * dx + dy * dy
    if length_sq == 0:
        return None
    t = ((point[0] - start[0]) * dx + (point[1] - start[1]) * dy) / length_sq
    if t < 0 or t > 1:
        return None
    return distance(point, (start[0] + t * dx, start[1] + t * dy))

def bond_at(molecule: Molecule, point: Point, scale: float) -> Optional[Bond]:
    threshold = BOND_HIT_DISTANCE / scale
    positions = {a.id: (a.x, a.y) for a in molecule.atoms}
    for bond in molecule.bonds:
        start = positions.get(bond.source)
        end = positions.get(bond.target)
        if start is None or end is None:
            continue
        d = segment_distance(point, start, end)
        if d is not None and d < threshold:
            return bond
    return None

def snap_angle(angle: float, step: float = SNAP_STEP) -> float:
    return round(angle / step) * step

def bond_endpoint(origin: Point, pointer: Point, existing_bonds: int) -> Point:
    """
    Where a bond dragged from `origin` towards `pointer` ends when released
    over empty space: one bond length out, snapped to 60 degree increments
    while the origin still has fewer than four bonds.
    """
    angle = math.atan2(pointer[1] - origin[1], pointer[0] - origin[0])
    if existing_bonds < SNAP_MAX_BONDS:
        angle = snap_angle(angle)
    return origin[0] + math.cos(angle) * BOND_LENGTH, origin[1] + math.sin(angle) * BOND_LENGTH

def ring_positions(center: Point, size: int = 6, radius: float = BOND_LENGTH) -> list[Point]:
    step = 2 * math.pi / size
    return [
        (center[0] + math.cos(i * step) * radius, center[1] + math.sin(i * step) * radius)
        for i in range(size)
    ]

def bounding_box(molecule: Molecule) -> Optional[Tuple[float, float, float, float]]:
    if molecule.is_empty:
        return None
    xs = [a.x for a in molecule.atoms]
    ys = [a.y for a in molecule.atoms]
    return min(xs), min(ys), max(xs), max(ys)

def perpendicular_offset(start: Point, end: Point, gap: float) -> Optional[Point]:
    """Offset vector of length `gap` perpendicular to start->end."""
    dx = end[0] - start[0]
    dy = end[1] - start[1]
    length = math.hypot(dx, dy)
    if length == 0:
        return None
    return (-dy / length) * gap, (dx / length) * gap
