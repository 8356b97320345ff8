import hashlib
import json
import logging
import uuid
from typing import Optional
from rdkit import Chem
from rdkit.Chem import AllChem
from stereochem.models import Molecule, Atom, Bond
from stereochem.chemistry.constants import (
    BOND_TYPE_BY_ORDER,
    LAYOUT_ORIGIN_X,
    LAYOUT_ORIGIN_Y,
    LAYOUT_SCALE,
    coerce_element,
)

logger = logging.getLogger(__name__)

RDKIT_BOND_TYPES = {
    "single": Chem.BondType.SINGLE,
    "double": Chem.BondType.DOUBLE,
    "triple": Chem.BondType.TRIPLE,
    # Stereo styles are drawn differently but are still single bonds
    "wedge": Chem.BondType.SINGLE,
    "dash": Chem.BondType.SINGLE,
}

def graph_key(molecule: Molecule) -> str:
    """
    Content hash of the atom/bond graph. Identical drawings produce identical
    keys; any change to an element, position, charge or bond changes it.
    """
    payload = {
        "atoms": [a.model_dump() for a in molecule.atoms],
        "bonds": [b.model_dump() for b in molecule.bonds],
    }
    blob = json.dumps(payload, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(blob.encode("utf-8")).hexdigest()

def to_layout(x: float, y: float) -> tuple[float, float]:
    """Database/RDKit 2D coordinates -> editor model space (y axis flipped)."""
    return x * LAYOUT_SCALE + LAYOUT_ORIGIN_X, -y * LAYOUT_SCALE + LAYOUT_ORIGIN_Y

def molecule_to_mol(molecule: Molecule) -> Chem.Mol:
    """
    Builds an RDKit molecule (with a 2D conformer) from the editor graph.
    Bonds pointing at missing atoms are skipped.
    """
    rw_mol = Chem.RWMol()
    atom_map = {}  # editor id -> rdkit idx

    for atom_data in molecule.atoms:
        a = Chem.Atom(atom_data.element)
        a.SetFormalCharge(atom_data.formal_charge)
        atom_map[atom_data.id] = rw_mol.AddAtom(a)

    for bond in molecule.bonds:
        if bond.source in atom_map and bond.target in atom_map:
            rw_mol.AddBond(
                atom_map[bond.source],
                atom_map[bond.target],
                RDKIT_BOND_TYPES.get(bond.type, Chem.BondType.SINGLE)
            )

    mol = rw_mol.GetMol()

    # Editor y grows downwards
    conf = Chem.Conformer(mol.GetNumAtoms())
    for atom_data in molecule.atoms:
        conf.SetAtomPosition(
            atom_map[atom_data.id],
            ((atom_data.x - LAYOUT_ORIGIN_X) / LAYOUT_SCALE, -(atom_data.y - LAYOUT_ORIGIN_Y) / LAYOUT_SCALE, 0.0)
        )
    mol.AddConformer(conf, assignId=True)
    mol.UpdatePropertyCache(strict=False)
    return mol

def mol_to_molecule(mol: Chem.Mol, id_prefix: Optional[str] = None) -> Molecule:
    """
    Converts an RDKit molecule into an editor graph, computing 2D coordinates
    if the molecule has none. Aromatic bonds are kekulized first since the
    editor has no aromatic bond type.
    """
    if not id_prefix:
        id_prefix = f"rd-{uuid.uuid4().hex[:6]}"

    mol = Chem.Mol(mol)
    try:
        Chem.Kekulize(mol, clearAromaticFlags=True)
    except Exception as e:
        logger.debug("Kekulization failed, keeping bond orders as-is: %s", e)

    if mol.GetNumConformers() == 0:
        AllChem.Compute2DCoords(mol)
    conf = mol.GetConformer()

    atoms = []
    for atom in mol.GetAtoms():
        idx = atom.GetIdx()
        pos = conf.GetAtomPosition(idx)
        x, y = to_layout(pos.x, pos.y)
        atoms.append(Atom(
            id=f"{id_prefix}-{idx}",
            element=coerce_element(atom.GetSymbol()),
            x=x,
            y=y,
            formal_charge=atom.GetFormalCharge(),
        ))

    bonds = []
    for i, bond in enumerate(mol.GetBonds()):
        order = int(round(bond.GetBondTypeAsDouble()))
        bonds.append(Bond(
            id=f"{id_prefix}-b{i}",
            source=f"{id_prefix}-{bond.GetBeginAtomIdx()}",
            target=f"{id_prefix}-{bond.GetEndAtomIdx()}",
            type=BOND_TYPE_BY_ORDER.get(order, "single"),
        ))

    return Molecule(atoms=atoms, bonds=bonds)

def smiles_to_molecule(smiles: str, id_prefix: Optional[str] = None) -> Optional[Molecule]:
    mol = Chem.MolFromSmiles(smiles.strip()) if smiles and smiles.strip() else None
    if mol is None:
        return None
    return mol_to_molecule(mol, id_prefix)

def molblock_to_molecule(mol_block: str, id_prefix: Optional[str] = None) -> Optional[Molecule]:
    mol = Chem.MolFromMolBlock(mol_block, removeHs=False)
    if mol is None:
        return None
    return mol_to_molecule(mol, id_prefix)

def molecule_to_smiles(molecule: Molecule) -> Optional[str]:
    """Canonical SMILES for the drawing, or None if RDKit cannot sanitize it."""
    if molecule.is_empty:
        return None
    try:
        mol = molecule_to_mol(molecule)
        Chem.SanitizeMol(mol)
        return Chem.MolToSmiles(mol)
    except Exception as e:
        logger.debug("SMILES generation failed: %s", e)
        return None

def molecule_to_molblock(molecule: Molecule, name: str = "") -> str:
    mol = molecule_to_mol(molecule)
    if name:
        mol.SetProp("_Name", name)
    return Chem.MolToMolBlock(mol)
