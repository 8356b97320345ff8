import math
import pytest
from unittest.mock import MagicMock
from stereochem.models import Atom, Bond, Molecule
from stereochem.editor import geometry
from stereochem.editor.canvas import StructureEditor, Tool
from stereochem.editor.geometry import ViewTransform

def make_molecule(atoms, bonds=()):
    return Molecule(
        atoms=[Atom(id=i, element=el, x=x, y=y) for i, el, x, y in atoms],
        bonds=[Bond(id=f"b{n}", source=s, target=t, type=kind) for n, (s, t, kind) in enumerate(bonds)],
    )

def ethane_editor():
    mol = make_molecule(
        [("a", "C", 0.0, 0.0), ("b", "C", 100.0, 0.0)],
        [("a", "b", "single")],
    )
    return StructureEditor(mol)

# --- hit-testing ---

@pytest.mark.parametrize("scale", [0.5, 1.0, 2.0, 4.0])
def test_atom_hit_uses_screen_radius_at_any_scale(scale):
    mol = make_molecule([("a", "C", 100.0, 100.0)])
    view = ViewTransform(scale=scale, offset_x=30.0, offset_y=-20.0)
    sx, sy = view.to_screen(100.0, 100.0)

    near = view.to_model(sx + 15, sy)
    far = view.to_model(sx + 20, sy)

    assert geometry.atom_at(mol, near, view.scale).id == "a"
    assert geometry.atom_at(mol, far, view.scale) is None

def test_bond_hit_requires_projection_inside_segment():
    mol = make_molecule(
        [("a", "C", 0.0, 0.0), ("b", "C", 100.0, 0.0)],
        [("a", "b", "single")],
    )
    assert geometry.bond_at(mol, (50.0, 5.0), 1.0).id == "b0"
    assert geometry.bond_at(mol, (50.0, 12.0), 1.0) is None
    # Beyond the end of the segment even though the line passes close by
    assert geometry.bond_at(mol, (110.0, 0.0), 1.0) is None

def test_segment_distance_degenerate_segment():
    assert geometry.segment_distance((1.0, 1.0), (0.0, 0.0), (0.0, 0.0)) is None

def test_view_transform_round_trip_with_pixel_ratio():
    view = ViewTransform(scale=2.0, offset_x=10.0, offset_y=20.0, pixel_ratio_x=2.0, pixel_ratio_y=2.0)
    x, y = view.to_model(105.0, 60.0)
    assert (x, y) == pytest.approx((100.0, 50.0))
    assert view.to_screen(x, y) == pytest.approx((210.0, 120.0))

# --- snapping ---

def test_bond_endpoint_snaps_to_sixty_degrees():
    end = geometry.bond_endpoint((0.0, 0.0), (math.cos(math.radians(50)), math.sin(math.radians(50))), 1)
    expected = (math.cos(math.pi / 3) * 55, math.sin(math.pi / 3) * 55)
    assert end == pytest.approx(expected)

def test_bond_endpoint_uses_raw_angle_with_four_bonds():
    angle = math.radians(50)
    end = geometry.bond_endpoint((0.0, 0.0), (math.cos(angle), math.sin(angle)), 4)
    assert end == pytest.approx((math.cos(angle) * 55, math.sin(angle) * 55))
    assert geometry.distance((0.0, 0.0), end) == pytest.approx(55)

# --- atom tool ---

def test_atom_tool_adds_and_retypes():
    editor = StructureEditor()
    assert editor.pointer_down(100, 100)
    assert len(editor.molecule.atoms) == 1
    assert editor.molecule.atoms[0].element == "C"

    # Same element on an existing atom is a no-op
    assert not editor.pointer_down(105, 100)
    assert len(editor.molecule.atoms) == 1

    editor.set_element("O")
    assert editor.tool == Tool.ATOM
    assert editor.pointer_down(102, 98)
    assert len(editor.molecule.atoms) == 1
    assert editor.molecule.atoms[0].element == "O"

def test_set_element_rejects_unknown_symbol():
    editor = StructureEditor()
    with pytest.raises(ValueError):
        editor.set_element("Xe")

def test_on_change_receives_snapshot():
    callback = MagicMock()
    editor = StructureEditor(on_change=callback)
    editor.pointer_down(10, 10)
    callback.assert_called_once()
    snapshot = callback.call_args[0][0]
    assert len(snapshot.atoms) == 1
    snapshot.atoms.clear()
    assert len(editor.molecule.atoms) == 1

# --- bond drawing ---

def test_bond_drag_to_empty_space_adds_snapped_atom_and_switches_to_pan():
    editor = ethane_editor()
    editor.set_tool(Tool.BOND)

    assert not editor.pointer_down(105, 0)
    assert editor.drag_origin_id == "b"
    editor.pointer_move(180, 3)
    assert editor.preview() == ((100.0, 0.0), (180.0, 3.0))

    assert editor.pointer_up(180, 3)
    assert len(editor.molecule.atoms) == 3
    assert len(editor.molecule.bonds) == 2
    new_atom = editor.molecule.atoms[-1]
    assert (new_atom.x, new_atom.y) == pytest.approx((155.0, 0.0))
    assert editor.molecule.has_bond_between("b", new_atom.id)
    assert editor.tool == Tool.PAN
    assert editor.preview() is None

def test_bond_drag_onto_atom_connects():
    editor = StructureEditor(make_molecule([("a", "C", 0.0, 0.0), ("b", "O", 200.0, 0.0)]))
    editor.set_tool(Tool.DOUBLE)
    editor.pointer_down(2, 2)
    assert editor.pointer_up(198, 1)
    assert len(editor.molecule.bonds) == 1
    bond = editor.molecule.bonds[0]
    assert bond.connects("a", "b")
    assert bond.type == "double"
    assert editor.tool == Tool.DOUBLE

def test_duplicate_bond_is_ignored():
    editor = ethane_editor()
    editor.set_tool(Tool.BOND)
    editor.pointer_down(-5, 0)
    assert not editor.pointer_up(105, 0)
    editor.pointer_down(105, 0)
    assert not editor.pointer_up(-5, 0)
    assert len(editor.molecule.bonds) == 1

def test_release_on_origin_is_ignored():
    editor = ethane_editor()
    editor.set_tool(Tool.BOND)
    editor.pointer_down(-5, 0)
    assert not editor.pointer_up(3, 3)
    assert len(editor.molecule.atoms) == 2

def test_bond_tool_on_empty_space_starts_from_new_atom():
    editor = StructureEditor()
    editor.set_tool(Tool.BOND)
    assert editor.pointer_down(300, 300)
    origin_id = editor.drag_origin_id
    assert origin_id == editor.molecule.atoms[0].id
    editor.pointer_up(400, 300)
    assert len(editor.molecule.atoms) == 2
    assert editor.molecule.has_bond_between(origin_id, editor.molecule.atoms[1].id)

def test_bond_tool_on_bond_sets_order():
    editor = ethane_editor()
    editor.set_tool(Tool.TRIPLE)
    assert editor.pointer_down(50, 4)
    assert editor.molecule.bonds[0].type == "triple"
    assert editor.drag_origin_id is None

def test_bond_tool_on_bonded_atom_sets_order_instead_of_dragging():
    editor = ethane_editor()
    editor.set_tool(Tool.DOUBLE)

    # atom a sits on the end of bond b0
    assert editor.pointer_down(0, 0)
    assert editor.molecule.bonds[0].type == "double"
    assert editor.drag_origin_id is None
    assert not editor.pointer_up(200, 0)
    assert len(editor.molecule.atoms) == 2

def test_bond_tool_drags_from_atom_off_the_bond_line():
    editor = ethane_editor()
    editor.set_tool(Tool.DOUBLE)
    assert not editor.pointer_down(-5, 0)
    assert editor.drag_origin_id == "a"
    assert editor.molecule.bonds[0].type == "single"

# --- erase ---

def test_erase_atom_cascades_to_its_bonds():
    mol = make_molecule(
        [("c", "C", 0.0, 0.0), ("h1", "H", 55.0, 0.0), ("h2", "H", -55.0, 0.0), ("o", "O", 0.0, 55.0)],
        [("c", "h1", "single"), ("c", "h2", "single"), ("c", "o", "single"), ("h1", "o", "single")],
    )
    editor = StructureEditor(mol)
    editor.set_tool(Tool.ERASER)
    degree = editor.molecule.degree("c")

    assert editor.pointer_down(1, 1)
    assert len(editor.molecule.atoms) == 3
    assert len(editor.molecule.bonds) == 4 - degree
    assert all(not b.touches("c") for b in editor.molecule.bonds)

def test_eraser_removes_bond_and_ignores_empty_space():
    editor = ethane_editor()
    editor.set_tool(Tool.ERASER)
    assert not editor.pointer_down(500, 500)
    assert editor.pointer_down(50, 2)
    assert editor.molecule.bonds == []
    assert len(editor.molecule.atoms) == 2

def test_select_central_marks_atom():
    editor = ethane_editor()
    editor.set_tool(Tool.SELECT_CENTRAL)
    assert not editor.pointer_down(100, 0)
    assert editor.selected_atom_id == "b"
    editor.set_tool(Tool.ERASER)
    editor.pointer_down(100, 0)
    assert editor.selected_atom_id is None

# --- ring stamp ---

def test_benzene_stamp():
    editor = StructureEditor()
    editor.set_tool(Tool.BENZENE)
    assert editor.pointer_down(300, 300)

    assert len(editor.molecule.atoms) == 6
    assert len(editor.molecule.bonds) == 6
    assert [b.type for b in editor.molecule.bonds].count("double") == 3
    for atom in editor.molecule.atoms:
        assert geometry.distance((atom.x, atom.y), (300.0, 300.0)) == pytest.approx(55)
    assert all(editor.molecule.degree(a.id) == 2 for a in editor.molecule.atoms)
    assert editor.tool == Tool.PAN

# --- view ---

def test_pan_moves_offset():
    editor = StructureEditor()
    editor.set_tool(Tool.PAN)
    editor.pointer_down(10, 10)
    assert editor.is_panning
    editor.pointer_move(30, 40)
    assert (editor.view.offset_x, editor.view.offset_y) == (20.0, 30.0)
    editor.pointer_up(30, 40)
    assert not editor.is_panning

def test_zoom_is_clamped():
    editor = StructureEditor()
    for _ in range(20):
        editor.zoom_in()
    assert editor.view.scale == pytest.approx(5.0)
    for _ in range(40):
        editor.zoom_out()
    assert editor.view.scale == pytest.approx(0.2)

@pytest.mark.parametrize("scale", [1.0, 2.0])
def test_center_molecule(scale):
    editor = StructureEditor(
        make_molecule([("a", "C", 0.0, 0.0), ("b", "C", 100.0, 100.0)]),
        width=1000,
        height=800,
    )
    editor.view.scale = scale
    editor.center_molecule()
    assert editor.view.to_screen(50.0, 50.0) == pytest.approx((500.0, 400.0))

def test_center_empty_molecule_keeps_view():
    editor = StructureEditor()
    editor.view.offset_x = 12.0
    editor.center_molecule()
    assert editor.view.offset_x == 12.0

def test_load_resets_transient_state():
    editor = ethane_editor()
    editor.set_tool(Tool.BOND)
    editor.pointer_down(-5, 0)
    assert editor.drag_origin_id == "a"
    editor.selected_atom_id = "a"
    editor.load(make_molecule([("x", "N", 5.0, 5.0)]))
    assert editor.drag_origin_id is None
    assert editor.selected_atom_id is None
    assert [a.id for a in editor.molecule.atoms] == ["x"]
