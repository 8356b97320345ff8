from typing import Dict, List, Optional, Literal
from pydantic import BaseModel, Field

ElementType = Literal["C", "H", "O", "N", "F", "Cl", "Br", "I", "P", "S"]
BondType = Literal["single", "double", "triple", "wedge", "dash"]

class Atom(BaseModel):
    id: str
    element: ElementType = "C"
    x: float
    y: float
    formal_charge: int = 0
    lone_pairs: int = Field(default=0, ge=0)

class Bond(BaseModel):
    id: str
    source: str
    target: str
    type: BondType = "single"

    def connects(self, a: str, b: str) -> bool:
        return (self.source == a and self.target == b) or (self.source == b and self.target == a)

    def touches(self, atom_id: str) -> bool:
        return self.source == atom_id or self.target == atom_id

class Molecule(BaseModel):
    atoms: List[Atom] = []
    bonds: List[Bond] = []

    @property
    def is_empty(self) -> bool:
        return not self.atoms

    def atom(self, atom_id: str) -> Optional[Atom]:
        for a in self.atoms:
            if a.id == atom_id:
                return a
        return None

    def bonds_of(self, atom_id: str) -> List[Bond]:
        return [b for b in self.bonds if b.touches(atom_id)]

    def degree(self, atom_id: str) -> int:
        return len(self.bonds_of(atom_id))

    def has_bond_between(self, a: str, b: str) -> bool:
        return any(bond.connects(a, b) for bond in self.bonds)

class MoleculeMetadata(BaseModel):
    smiles: str = ""
    iupac_name: str = ""
    common_name: str = ""
    formula: str = ""

    @property
    def reference(self) -> str:
        """The identifying string a database lookup can be keyed on, if any."""
        return self.iupac_name or self.smiles

class SearchResult(BaseModel):
    molecule: Molecule
    metadata: MoleculeMetadata = MoleculeMetadata()

class Stereocenter(BaseModel):
    atom_id: str
    configuration: Literal["R", "S", "None"] = "None"
    logic: str = ""

class VSEPRInfo(BaseModel):
    axe_notation: str = ""
    lone_pairs: int = 0
    electronic_geometry: str = ""
    molecular_geometry: str = ""
    bond_angles: str = ""

class PhysicalProperties(BaseModel):
    molecular_weight: Optional[str] = None
    log_p: Optional[str] = None
    boiling_point: Optional[str] = None
    melting_point: Optional[str] = None
    density: Optional[str] = None
    h_bond_donors: Optional[int] = None
    h_bond_acceptors: Optional[int] = None

    @property
    def is_empty(self) -> bool:
        return all(v is None or v == "" for v in self.model_dump().values())

    def merged(self, other: "PhysicalProperties") -> "PhysicalProperties":
        """Returns a copy with every populated field of `other` laid over this one."""
        patch = {k: v for k, v in other.model_dump().items() if v is not None and v != ""}
        return self.model_copy(update=patch)

class IsomerInfo(BaseModel):
    name: str = ""
    smiles: str = ""
    type: Literal["enantiomer", "diastereomer", "constitutional"] = "constitutional"
    description: str = ""
    sdf_data: Optional[str] = None

class ConformationInfo(BaseModel):
    name: str = ""
    smiles: str = ""
    energy_score: str = ""
    description: str = ""
    sdf_data: Optional[str] = None

class AnalysisResult(BaseModel):
    stereocenters: List[Stereocenter] = []
    vsepr: Dict[str, VSEPRInfo] = {}
    dipole_moment: str = ""
    educational_note: str = ""
    sdf_data: Optional[str] = None
    isomers: List[IsomerInfo] = []
    conformations: List[ConformationInfo] = []
    properties: PhysicalProperties = PhysicalProperties()
    metadata: MoleculeMetadata = MoleculeMetadata()

# --- API request bodies ---

class QueryRequest(BaseModel):
    query: str

class AnalyzeRequest(BaseModel):
    molecule: Optional[Molecule] = None

class PointerEvent(BaseModel):
    kind: Literal["down", "move", "up"]
    x: float
    y: float

class ToolRequest(BaseModel):
    tool: str

class ElementRequest(BaseModel):
    element: ElementType

class ZoomRequest(BaseModel):
    direction: Literal["in", "out"]

class ExplainRequest(BaseModel):
    topic: str
