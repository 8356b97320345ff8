"""
Skeletal-formula rendering.

`render_scene` turns a molecule into drawing primitives in model space; the
frontend (or `scene_to_svg`) applies the view transform. Stroke widths, bond
gaps and font sizes are divided by the scale so they stay constant on screen.

Labeling rule: a carbon with at least one bond is an implicit vertex and gets
no label. Isolated carbons and every other element are labeled, with an
opaque backing box so the label breaks any bond lines passing underneath.
"""
from dataclasses import dataclass, field
from typing import Optional
from xml.sax.saxutils import escape
from stereochem.models import Molecule
from stereochem.chemistry.constants import element_color
from stereochem.editor.geometry import Point, ViewTransform, perpendicular_offset

BOND_COLOR = "#334155"
HOVER_COLOR = "#3b82f6"
PREVIEW_COLOR = "rgba(59, 130, 246, 0.4)"
DOUBLE_GAP = 3.5
TRIPLE_GAP = 5.0
LABEL_FONT_SIZE = 14.0
LABEL_BOX_HEIGHT = 10.0
# Rough glyph advance for the label box; the browser measures text properly.
LABEL_CHAR_WIDTH = 0.62

@dataclass
class LineSegment:
    start: Point
    end: Point
    width: float
    color: str = BOND_COLOR
    bond_id: Optional[str] = None

@dataclass
class AtomLabel:
    atom_id: str
    text: str
    position: Point
    color: str
    font_size: float
    # backing box: x, y, width, height
    box: tuple[float, float, float, float] = (0.0, 0.0, 0.0, 0.0)

@dataclass
class HoverHalo:
    atom_id: str
    center: Point
    radius: float

@dataclass
class PreviewSegment:
    start: Point
    end: Point
    width: float
    dash: tuple[float, float] = (5.0, 5.0)

@dataclass
class Scene:
    lines: list[LineSegment] = field(default_factory=list)
    labels: list[AtomLabel] = field(default_factory=list)
    halos: list[HoverHalo] = field(default_factory=list)
    preview: Optional[PreviewSegment] = None

    def labeled_atom_ids(self) -> set[str]:
        return {label.atom_id for label in self.labels}

def needs_label(element: str, bond_count: int) -> bool:
    return element != "C" or bond_count == 0

def bond_lines(start: Point, end: Point, bond_type: str, scale: float) -> list[tuple[Point, Point]]:
    """Parallel strokes for one bond; empty for a zero-length bond."""
    if bond_type == "double":
        off = perpendicular_offset(start, end, DOUBLE_GAP / scale)
        if off is None:
            return []
        ox, oy = off
        return [
            ((start[0] + ox, start[1] + oy), (end[0] + ox, end[1] + oy)),
            ((start[0] - ox, start[1] - oy), (end[0] - ox, end[1] - oy)),
        ]
    if bond_type == "triple":
        off = perpendicular_offset(start, end, TRIPLE_GAP / scale)
        if off is None:
            return []
        ox, oy = off
        return [
            (start, end),
            ((start[0] + ox, start[1] + oy), (end[0] + ox, end[1] + oy)),
            ((start[0] - ox, start[1] - oy), (end[0] - ox, end[1] - oy)),
        ]
    if start == end:
        return []
    # single; wedge and dash are drawn plain until stereo rendering exists
    return [(start, end)]

def render_scene(
    molecule: Molecule,
    scale: float = 1.0,
    hovered_atom_id: Optional[str] = None,
    hovered_bond_id: Optional[str] = None,
    preview: Optional[tuple[Point, Point]] = None,
) -> Scene:
    scene = Scene()
    positions = {a.id: (a.x, a.y) for a in molecule.atoms}

    if preview is not None:
        scene.preview = PreviewSegment(start=preview[0], end=preview[1], width=1.5 / scale)

    for bond in molecule.bonds:
        start = positions.get(bond.source)
        end = positions.get(bond.target)
        if start is None or end is None:
            continue
        hovered = bond.id == hovered_bond_id
        width = (3.0 if hovered else 1.6) / scale
        color = HOVER_COLOR if hovered else BOND_COLOR
        for s, e in bond_lines(start, end, bond.type, scale):
            scene.lines.append(LineSegment(start=s, end=e, width=width, color=color, bond_id=bond.id))

    degree = {a.id: 0 for a in molecule.atoms}
    for bond in molecule.bonds:
        for atom_id in (bond.source, bond.target):
            if atom_id in degree:
                degree[atom_id] += 1

    for atom in molecule.atoms:
        if atom.id == hovered_atom_id:
            scene.halos.append(HoverHalo(atom_id=atom.id, center=(atom.x, atom.y), radius=12 / scale))

        if not needs_label(atom.element, degree[atom.id]):
            continue

        font_size = LABEL_FONT_SIZE / scale
        w = len(atom.element) * font_size * LABEL_CHAR_WIDTH + 2 / scale
        h = LABEL_BOX_HEIGHT / scale
        scene.labels.append(AtomLabel(
            atom_id=atom.id,
            text=atom.element,
            position=(atom.x, atom.y),
            color=element_color(atom.element),
            font_size=font_size,
            box=(atom.x - w / 2, atom.y - h / 2, w, h),
        ))

    return scene

def scene_to_svg(scene: Scene, view: ViewTransform, width: int, height: int) -> str:
    parts = [
        f'<svg xmlns="http://www.w3.org/2000/svg" width="{width}" height="{height}" '
        f'viewBox="0 0 {width} {height}">',
        f'<rect width="{width}" height="{height}" fill="white"/>',
        f'<g transform="translate({view.offset_x:.3f},{view.offset_y:.3f}) scale({view.scale:.5f})">',
    ]

    if scene.preview is not None:
        p = scene.preview
        parts.append(
            f'<line x1="{p.start[0]:.3f}" y1="{p.start[1]:.3f}" x2="{p.end[0]:.3f}" y2="{p.end[1]:.3f}" '
            f'stroke="{PREVIEW_COLOR}" stroke-width="{p.width:.3f}" stroke-dasharray="{p.dash[0]},{p.dash[1]}"/>'
        )

    for line in scene.lines:
        parts.append(
            f'<line x1="{line.start[0]:.3f}" y1="{line.start[1]:.3f}" '
            f'x2="{line.end[0]:.3f}" y2="{line.end[1]:.3f}" '
            f'stroke="{line.color}" stroke-width="{line.width:.3f}" stroke-linecap="round"/>'
        )

    for halo in scene.halos:
        parts.append(
            f'<circle cx="{halo.center[0]:.3f}" cy="{halo.center[1]:.3f}" r="{halo.radius:.3f}" '
            f'fill="rgba(59, 130, 246, 0.1)"/>'
        )

    for label in scene.labels:
        x, y, w, h = label.box
        parts.append(f'<rect x="{x:.3f}" y="{y:.3f}" width="{w:.3f}" height="{h:.3f}" fill="white"/>')
        parts.append(
            f'<text x="{label.position[0]:.3f}" y="{label.position[1]:.3f}" fill="{label.color}" '
            f'font-family="Inter, sans-serif" font-weight="bold" font-size="{label.font_size:.3f}" '
            f'text-anchor="middle" dominant-baseline="middle">{escape(label.text)}</text>'
        )

    parts.append("</g></svg>")
    return "\n".join(parts)
