import logging
import uuid
from enum import Enum
from typing import Callable, Optional
from stereochem.models import Atom, Bond, Molecule
from stereochem.chemistry.constants import ELEMENTS
from stereochem.editor import geometry
from stereochem.editor.geometry import Point, ViewTransform
from stereochem.editor.render import Scene, render_scene, scene_to_svg

logger = logging.getLogger(__name__)

class Tool(str, Enum):
    ATOM = "atom"
    BOND = "bond"
    DOUBLE = "double"
    TRIPLE = "triple"
    ERASER = "eraser"
    PAN = "pan"
    SELECT_CENTRAL = "select-central"
    BENZENE = "benzene"

BOND_TOOLS = {
    Tool.BOND: "single",
    Tool.DOUBLE: "double",
    Tool.TRIPLE: "triple",
}

RING_ELEMENT = "C"

class StructureEditor:
    """
    Owns the live molecule while it is being drawn and applies pointer
    gestures to it according to the active tool.

    Pointer coordinates passed in are device (CSS) pixels relative to the
    canvas; they are mapped to model space through `self.view`. Gestures that
    don't apply (clicking empty space with the eraser, dropping a bond on its
    own origin, ...) are silently ignored.
    """

    def __init__(
        self,
        molecule: Optional[Molecule] = None,
        width: int = 1000,
        height: int = 800,
        on_change: Optional[Callable[[Molecule], None]] = None,
    ):
        self.molecule = molecule.model_copy(deep=True) if molecule else Molecule()
        self.width = width
        self.height = height
        self.view = ViewTransform()
        self.tool = Tool.ATOM
        self.element = "C"
        self.on_change = on_change

        self.drag_origin_id: Optional[str] = None
        self.pointer: Point = (0.0, 0.0)
        self.hovered_atom_id: Optional[str] = None
        self.hovered_bond_id: Optional[str] = None
        self.selected_atom_id: Optional[str] = None
        self._pan_last: Optional[Point] = None

    # --- state ---

    def set_tool(self, tool):
        self.tool = Tool(tool)
        self.drag_origin_id = None
        self._pan_last = None

    def set_element(self, element: str):
        """Picking an element from the palette also switches to the atom tool."""
        if element not in ELEMENTS:
            raise ValueError(f"Unsupported element: {element}")
        self.element = element
        self.set_tool(Tool.ATOM)

    def snapshot(self) -> Molecule:
        return self.molecule.model_copy(deep=True)

    def load(self, molecule: Molecule):
        """Adopts a replacement molecule (search result, alternative isomer...)."""
        self.molecule = molecule.model_copy(deep=True)
        self.drag_origin_id = None
        self.hovered_atom_id = None
        self.hovered_bond_id = None
        self.selected_atom_id = None
        self._commit()

    def clear(self):
        self.load(Molecule())

    def _commit(self):
        if self.on_change:
            self.on_change(self.snapshot())

    @staticmethod
    def _new_id(prefix: str) -> str:
        return f"{prefix}-{uuid.uuid4().hex[:10]}"

    @property
    def is_panning(self) -> bool:
        return self._pan_last is not None

    # --- pointer gestures ---

    def pointer_down(self, device_x: float, device_y: float) -> bool:
        """Returns True when the molecule changed."""
        if self.tool == Tool.PAN:
            self._pan_last = (device_x, device_y)
            return False

        pos = self.view.to_model(device_x, device_y)
        self.pointer = pos

        if self.tool == Tool.BENZENE:
            self.stamp_ring(pos)
            self.set_tool(Tool.PAN)
            return True

        atom = geometry.atom_at(self.molecule, pos, self.view.scale)
        bond = geometry.bond_at(self.molecule, pos, self.view.scale)

        # Eraser prefers atoms; bond tools prefer the bond under the pointer
        if self.tool == Tool.ERASER:
            if atom:
                self.erase_atom(atom.id)
                return True
            if bond:
                self.erase_bond(bond.id)
                return True
            return False

        if self.tool == Tool.SELECT_CENTRAL:
            if atom:
                self.selected_atom_id = atom.id
            return False

        if self.tool in BOND_TOOLS:
            if bond:
                bond.type = BOND_TOOLS[self.tool]
                self._commit()
                return True
            if atom:
                self.drag_origin_id = atom.id
                return False
            new_atom = self.add_atom(pos)
            self.drag_origin_id = new_atom.id
            return True

        if self.tool == Tool.ATOM:
            if atom:
                if atom.element != self.element:
                    atom.element = self.element
                    self._commit()
                    return True
                return False
            self.add_atom(pos)
            return True

        return False

    def pointer_move(self, device_x: float, device_y: float):
        if self._pan_last is not None:
            dx = (device_x - self._pan_last[0]) * self.view.pixel_ratio_x
            dy = (device_y - self._pan_last[1]) * self.view.pixel_ratio_y
            self.view.pan_by(dx, dy)
            self._pan_last = (device_x, device_y)
            return

        pos = self.view.to_model(device_x, device_y)
        self.pointer = pos
        atom = geometry.atom_at(self.molecule, pos, self.view.scale)
        bond = geometry.bond_at(self.molecule, pos, self.view.scale)
        self.hovered_atom_id = atom.id if atom else None
        self.hovered_bond_id = bond.id if bond else None

    def pointer_up(self, device_x: float, device_y: float) -> bool:
        if self._pan_last is not None:
            self._pan_last = None
            return False

        origin_id = self.drag_origin_id
        self.drag_origin_id = None
        if self.tool not in BOND_TOOLS or origin_id is None:
            return False

        origin = self.molecule.atom(origin_id)
        if origin is None:
            return False

        pos = self.view.to_model(device_x, device_y)
        self.pointer = pos
        target = geometry.atom_at(self.molecule, pos, self.view.scale)
        bond_type = BOND_TOOLS[self.tool]

        if target is not None:
            if target.id == origin_id:
                return False
            return self.connect(origin_id, target.id, bond_type) is not None

        end = geometry.bond_endpoint((origin.x, origin.y), pos, self.molecule.degree(origin_id))
        new_atom = Atom(id=self._new_id("atom"), element=self.element, x=end[0], y=end[1])
        self.molecule.atoms.append(new_atom)
        self.molecule.bonds.append(
            Bond(id=self._new_id("bond"), source=origin_id, target=new_atom.id, type=bond_type)
        )
        self.set_tool(Tool.PAN)
        self._commit()
        return True

    def preview(self) -> Optional[tuple[Point, Point]]:
        """Dashed segment from the drag origin to the pointer while drawing a bond."""
        if self.tool not in BOND_TOOLS or self.drag_origin_id is None:
            return None
        origin = self.molecule.atom(self.drag_origin_id)
        if origin is None:
            return None
        return (origin.x, origin.y), self.pointer

    # --- graph edits ---

    def add_atom(self, pos: Point, element: Optional[str] = None) -> Atom:
        atom = Atom(id=self._new_id("atom"), element=element or self.element, x=pos[0], y=pos[1])
        self.molecule.atoms.append(atom)
        self._commit()
        return atom

    def connect(self, source_id: str, target_id: str, bond_type: str = "single") -> Optional[Bond]:
        """
        Adds a bond between two distinct existing atoms. Returns None (and
        leaves the molecule untouched) when the pair is already bonded.
        """
        if source_id == target_id:
            return None
        if self.molecule.atom(source_id) is None or self.molecule.atom(target_id) is None:
            return None
        if self.molecule.has_bond_between(source_id, target_id):
            logger.debug("Ignoring duplicate bond %s-%s", source_id, target_id)
            return None
        bond = Bond(id=self._new_id("bond"), source=source_id, target=target_id, type=bond_type)
        self.molecule.bonds.append(bond)
        self._commit()
        return bond

    def erase_atom(self, atom_id: str):
        self.molecule.atoms = [a for a in self.molecule.atoms if a.id != atom_id]
        self.molecule.bonds = [b for b in self.molecule.bonds if not b.touches(atom_id)]
        if self.selected_atom_id == atom_id:
            self.selected_atom_id = None
        self._commit()

    def erase_bond(self, bond_id: str):
        self.molecule.bonds = [b for b in self.molecule.bonds if b.id != bond_id]
        self._commit()

    def stamp_ring(self, center: Point) -> list[Atom]:
        """
        Appends a benzene ring around `center`. Bonds alternate double/single
        as a Kekule approximation; there is no aromatic bond type.
        """
        stamp = uuid.uuid4().hex[:8]
        atoms = [
            Atom(id=f"bz-{stamp}-{i}", element=RING_ELEMENT, x=x, y=y)
            for i, (x, y) in enumerate(geometry.ring_positions(center))
        ]
        bonds = [
            Bond(
                id=f"bz-bond-{stamp}-{i}",
                source=atoms[i].id,
                target=atoms[(i + 1) % 6].id,
                type="double" if i % 2 == 0 else "single",
            )
            for i in range(6)
        ]
        self.molecule.atoms.extend(atoms)
        self.molecule.bonds.extend(bonds)
        self._commit()
        return atoms

    # --- view ---

    def render(self) -> Scene:
        return render_scene(
            self.molecule,
            scale=self.view.scale,
            hovered_atom_id=self.hovered_atom_id,
            hovered_bond_id=self.hovered_bond_id,
            preview=self.preview(),
        )

    def to_svg(self) -> str:
        return scene_to_svg(self.render(), self.view, self.width, self.height)

    def zoom_in(self):
        self.view.zoom(geometry.ZOOM_FACTOR)

    def zoom_out(self):
        self.view.zoom(1 / geometry.ZOOM_FACTOR)

    def center_molecule(self):
        box = geometry.bounding_box(self.molecule)
        if box is None:
            return
        min_x, min_y, max_x, max_y = box
        center_x = (min_x + max_x) / 2
        center_y = (min_y + max_y) / 2
        self.view.offset_x = self.width / 2 - center_x * self.view.scale
        self.view.offset_y = self.height / 2 - center_y * self.view.scale
