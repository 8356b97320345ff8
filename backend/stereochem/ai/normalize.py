"""
Defensive decoding of AI provider payloads.

The model is asked for a fixed JSON shape but does not always honour it:
fields arrive nested or flat, as numbers or strings, camelCase or
snake_case, sometimes wrapped in a markdown code fence. Nothing here trusts
the shape; a field that is missing or of the wrong type is treated as absent.
"""
import json
import logging
import re
from typing import Any, Optional
from stereochem.errors import MalformedResponse
from stereochem.models import (
    AnalysisResult,
    Atom,
    Bond,
    ConformationInfo,
    IsomerInfo,
    Molecule,
    MoleculeMetadata,
    PhysicalProperties,
    SearchResult,
    Stereocenter,
    VSEPRInfo,
)
from stereochem.chemistry.constants import coerce_element

logger = logging.getLogger(__name__)

FENCED_BLOCK = re.compile(r"```(?:[a-zA-Z0-9_-]+)?\n?([\s\S]*?)```")
FENCE_MARKER = re.compile(r"```[a-zA-Z0-9_-]*\n?")
MIN_SDF_LENGTH = 10

def normalize_field(value: Any) -> str:
    """
    Flattens a loosely-typed field to a string.

    Precedence for mappings: `text`, then `value`, then `name` (each
    normalized recursively), then the JSON dump of the whole mapping.
    Lists are JSON-dumped; None and unrepresentable values become "".
    """
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, dict):
        for key in ("text", "value", "name"):
            if value.get(key) is not None:
                return normalize_field(value[key])
        try:
            return json.dumps(value)
        except (TypeError, ValueError):
            return ""
    if isinstance(value, (list, tuple)):
        try:
            return json.dumps(value)
        except (TypeError, ValueError):
            return ""
    return ""

def strip_code_fence(text: str) -> str:
    text = text.strip()
    if "```" not in text:
        return text
    match = FENCED_BLOCK.search(text)
    if match and match.group(1).strip():
        return match.group(1).strip()
    return FENCE_MARKER.sub("", text).replace("```", "").strip()

def clean_sdf(text: Any) -> Optional[str]:
    """
    Strips any code-fence wrapper from a coordinate block. Returns None when
    what is left is too short to be a molfile.
    """
    if not isinstance(text, str):
        return None
    cleaned = strip_code_fence(text)
    if len(cleaned) < MIN_SDF_LENGTH:
        return None
    return cleaned

def parse_json_payload(text: Optional[str]) -> dict:
    """Parses a JSON object out of model output, tolerating fences and chatter."""
    if not text or not text.strip():
        raise MalformedResponse("Empty response body", provider="ai")
    body = strip_code_fence(text)
    try:
        data = json.loads(body)
    except json.JSONDecodeError:
        # Fallback: models sometimes wrap the object in prose
        start, end = body.find("{"), body.rfind("}")
        if start == -1 or end <= start:
            raise MalformedResponse("Response is not JSON", provider="ai")
        try:
            data = json.loads(body[start:end + 1])
        except json.JSONDecodeError as e:
            raise MalformedResponse(f"Response is not JSON: {e}", provider="ai") from e
    if not isinstance(data, dict):
        raise MalformedResponse("Expected a JSON object", provider="ai")
    return data

def _pick(raw: dict, *keys: str) -> Any:
    for key in keys:
        if key in raw and raw[key] is not None:
            return raw[key]
    return None

def _text(raw: dict, *keys: str) -> str:
    return normalize_field(_pick(raw, *keys))

def _int(value: Any, default: Optional[int] = None) -> Optional[int]:
    if isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        return int(value)
    if isinstance(value, str):
        match = re.search(r"-?\d+", value)
        if match:
            return int(match.group())
    return default

def _float(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return None
    return None

def _dicts(value: Any) -> list[dict]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, dict)]

def decode_metadata(raw: Any) -> MoleculeMetadata:
    if not isinstance(raw, dict):
        return MoleculeMetadata()
    return MoleculeMetadata(
        smiles=_text(raw, "smiles", "SMILES"),
        iupac_name=_text(raw, "iupacName", "iupac_name"),
        common_name=_text(raw, "commonName", "common_name"),
        formula=_text(raw, "formula"),
    )

def decode_properties(raw: Any) -> PhysicalProperties:
    if not isinstance(raw, dict):
        return PhysicalProperties()

    def opt(*keys):
        v = _text(raw, *keys)
        return v or None

    return PhysicalProperties(
        molecular_weight=opt("molecularWeight", "molecular_weight"),
        log_p=opt("logP", "log_p", "logp"),
        boiling_point=opt("boilingPoint", "boiling_point"),
        melting_point=opt("meltingPoint", "melting_point"),
        density=opt("density"),
        h_bond_donors=_int(_pick(raw, "hBondDonors", "h_bond_donors")),
        h_bond_acceptors=_int(_pick(raw, "hBondAcceptors", "h_bond_acceptors")),
    )

def _configuration(value: Any) -> str:
    # "R", "(S)", "R-configuration" but not "Racemic"
    text = normalize_field(value).strip().strip("()").strip().upper()
    if text[:1] in ("R", "S") and (len(text) == 1 or not text[1].isalpha()):
        return text[0]
    return "None"

def _vsepr_record(item: dict) -> VSEPRInfo:
    return VSEPRInfo(
        axe_notation=_text(item, "axeNotation", "axe_notation"),
        lone_pairs=_int(_pick(item, "lonePairs", "lone_pairs"), 0) or 0,
        electronic_geometry=_text(item, "electronicGeometry", "electronic_geometry"),
        molecular_geometry=_text(item, "molecularGeometry", "molecular_geometry"),
        bond_angles=_text(item, "bondAngles", "bond_angles"),
    )

def decode_vsepr(raw: Any) -> dict[str, VSEPRInfo]:
    """Accepts either a list of records carrying `atomId` or a mapping keyed by atom id."""
    records = {}
    if isinstance(raw, list):
        for item in _dicts(raw):
            atom_id = _text(item, "atomId", "atom_id")
            if atom_id:
                records[atom_id] = _vsepr_record(item)
    elif isinstance(raw, dict):
        for atom_id, item in raw.items():
            if isinstance(item, dict):
                records[str(atom_id)] = _vsepr_record(item)
    return records

def _isomer_type(value: Any) -> str:
    text = normalize_field(value).strip().lower()
    if text in ("enantiomer", "diastereomer", "constitutional"):
        return text
    return "constitutional"

def decode_analysis(raw: Any) -> AnalysisResult:
    if not isinstance(raw, dict):
        raise MalformedResponse("Analysis payload is not an object", provider="ai")

    stereocenters = []
    for item in _dicts(raw.get("stereocenters")):
        atom_id = _text(item, "atomId", "atom_id")
        if not atom_id:
            continue
        stereocenters.append(Stereocenter(
            atom_id=atom_id,
            configuration=_configuration(item.get("configuration")),
            logic=_text(item, "logic", "rationale"),
        ))

    isomers = [
        IsomerInfo(
            name=_text(item, "name"),
            smiles=_text(item, "smiles"),
            type=_isomer_type(item.get("type")),
            description=_text(item, "description"),
            sdf_data=clean_sdf(_pick(item, "sdfData", "sdf_data")),
        )
        for item in _dicts(raw.get("isomers"))
    ]

    conformations = [
        ConformationInfo(
            name=_text(item, "name"),
            smiles=_text(item, "smiles"),
            energy_score=_text(item, "energyScore", "energy_score"),
            description=_text(item, "description"),
            sdf_data=clean_sdf(_pick(item, "sdfData", "sdf_data")),
        )
        for item in _dicts(_pick(raw, "conformations", "conformers"))
    ]

    return AnalysisResult(
        stereocenters=stereocenters,
        vsepr=decode_vsepr(raw.get("vsepr")),
        dipole_moment=_text(raw, "dipoleMoment", "dipole_moment"),
        educational_note=_text(raw, "educationalNote", "educational_note"),
        sdf_data=clean_sdf(_pick(raw, "sdfData", "sdf_data")),
        isomers=isomers,
        conformations=conformations,
        properties=decode_properties(raw.get("properties")),
        metadata=decode_metadata(raw.get("metadata")),
    )

def decode_molecule(raw: Any) -> Molecule:
    """
    Builds a graph from a loosely-typed atoms/bonds payload. Atoms without an
    id or coordinates are dropped; bonds to missing atoms, self-bonds and
    duplicate pairs are dropped.
    """
    if not isinstance(raw, dict):
        return Molecule()

    atoms = []
    seen_ids = set()
    for item in _dicts(raw.get("atoms")):
        atom_id = _text(item, "id")
        x, y = _float(item.get("x")), _float(item.get("y"))
        if not atom_id or atom_id in seen_ids or x is None or y is None:
            continue
        seen_ids.add(atom_id)
        atoms.append(Atom(
            id=atom_id,
            element=coerce_element(item.get("element")),
            x=x,
            y=y,
            formal_charge=_int(_pick(item, "formalCharge", "formal_charge", "charge"), 0) or 0,
            lone_pairs=max(0, _int(_pick(item, "lonePairs", "lone_pairs"), 0) or 0),
        ))

    molecule = Molecule(atoms=atoms)
    for i, item in enumerate(_dicts(raw.get("bonds"))):
        source = _text(item, "from", "source")
        target = _text(item, "to", "target")
        if source == target or source not in seen_ids or target not in seen_ids:
            continue
        if molecule.has_bond_between(source, target):
            continue
        bond_type = normalize_field(_pick(item, "type", "order")).strip().lower()
        if bond_type in ("1", "2", "3"):
            bond_type = {"1": "single", "2": "double", "3": "triple"}[bond_type]
        if bond_type not in ("single", "double", "triple", "wedge", "dash"):
            bond_type = "single"
        molecule.bonds.append(Bond(
            id=_text(item, "id") or f"b-{i}",
            source=source,
            target=target,
            type=bond_type,
        ))
    return molecule

def decode_search(raw: Any) -> SearchResult:
    if not isinstance(raw, dict):
        raise MalformedResponse("Search payload is not an object", provider="ai")
    return SearchResult(
        molecule=decode_molecule(raw.get("molecule")),
        metadata=decode_metadata(raw.get("metadata")),
    )
