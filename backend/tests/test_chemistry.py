import pytest
from rdkit import Chem
from stereochem.config import Settings
from stereochem.models import Atom, Bond, Molecule
from stereochem.chemistry.constants import ELEMENT_PALETTE, ELEMENTS, SYMBOL_BY_ATOMIC_NUMBER, element_color
from stereochem.chemistry.molecule import (
    graph_key,
    molecule_to_mol,
    molecule_to_molblock,
    molecule_to_smiles,
    smiles_to_molecule,
    to_layout,
)

def ethanol_graph():
    return Molecule(
        atoms=[
            Atom(id="c1", element="C", x=500, y=400),
            Atom(id="c2", element="C", x=540, y=380),
            Atom(id="o", element="O", x=580, y=400),
        ],
        bonds=[Bond(id="b1", source="c1", target="c2"), Bond(id="b2", source="c2", target="o")],
    )

def test_to_layout_flips_y():
    assert to_layout(0.0, 0.0) == (500.0, 400.0)
    assert to_layout(1.0, 1.0) == (540.0, 360.0)

def test_smiles_to_molecule_kekulizes_aromatic_rings():
    mol = smiles_to_molecule("c1ccccc1", id_prefix="bz")
    assert len(mol.atoms) == 6
    assert [b.type for b in mol.bonds].count("double") == 3
    assert mol.atoms[0].id == "bz-0"
    assert mol.bonds[0].source.startswith("bz-")

def test_smiles_to_molecule_invalid():
    assert smiles_to_molecule("") is None
    assert smiles_to_molecule("C1CC") is None

def test_graph_to_rdkit_keeps_bonds_and_charges():
    graph = ethanol_graph()
    graph.atoms[2].formal_charge = -1
    mol = molecule_to_mol(graph)
    assert mol.GetNumAtoms() == 3
    assert mol.GetNumBonds() == 2
    assert mol.GetAtomWithIdx(2).GetFormalCharge() == -1
    pos = mol.GetConformer().GetAtomPosition(1)
    assert (pos.x, pos.y) == pytest.approx((1.0, 0.5))

def test_molecule_to_smiles():
    assert molecule_to_smiles(ethanol_graph()) == "CCO"
    assert molecule_to_smiles(Molecule()) is None

def test_molblock_round_trips_through_rdkit():
    block = molecule_to_molblock(ethanol_graph(), name="ethanol")
    assert block.startswith("ethanol")
    mol = Chem.MolFromMolBlock(block)
    assert Chem.MolToSmiles(mol) == "CCO"

def test_graph_key_tracks_content():
    assert graph_key(ethanol_graph()) == graph_key(ethanol_graph())
    changed = ethanol_graph()
    changed.bonds[1].type = "double"
    assert graph_key(changed) != graph_key(ethanol_graph())

def test_settings_from_env(monkeypatch):
    monkeypatch.setenv("OPENROUTER_API_KEY", "sk-test")
    monkeypatch.setenv("STEREOCHEM_ANALYZE_RETRIES", "5")
    monkeypatch.setenv("STEREOCHEM_HTTP_TIMEOUT", "2.5")
    monkeypatch.delenv("STEREOCHEM_AI_MODEL", raising=False)

    settings = Settings.from_env()

    assert settings.ai_api_key == "sk-test"
    assert settings.analyze_retries == 5
    assert settings.http_timeout == 2.5
    assert settings.resolve_retries == 1
    assert settings.ai_model == Settings().ai_model

def test_element_table_maps_atomic_numbers_back():
    assert set(ELEMENT_PALETTE) == set(ELEMENTS)
    for symbol, entry in ELEMENTS.items():
        assert set(entry) == {"color", "atomic_number"}
        assert SYMBOL_BY_ATOMIC_NUMBER[entry["atomic_number"]] == symbol
    assert element_color("Xe") == "#000000"
