import io
import logging
from contextlib import asynccontextmanager
from typing import Optional
from fastapi import Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response, StreamingResponse
from rdkit import Chem
from stereochem.config import configure_logging, get_settings
from stereochem.models import (
    AnalyzeRequest,
    ElementRequest,
    ExplainRequest,
    Molecule,
    PointerEvent,
    QueryRequest,
    ToolRequest,
    ZoomRequest,
)
from stereochem.chemistry.molecule import molblock_to_molecule, molecule_to_mol, smiles_to_molecule
from stereochem.ai.provider import AIProvider
from stereochem.services.orchestrator import Orchestrator
from stereochem.services.pubchem import PubChemClient
from stereochem.workspace import Workspace

logger = logging.getLogger(__name__)

_workspace: Optional[Workspace] = None

def get_workspace() -> Workspace:
    global _workspace
    if _workspace is None:
        settings = get_settings()
        orchestrator = Orchestrator(AIProvider(settings), PubChemClient(settings), settings=settings)
        _workspace = Workspace(orchestrator)
    return _workspace

@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    yield
    global _workspace
    if _workspace is not None:
        await _workspace.orchestrator.drain()
        await _workspace.orchestrator.primary.close()
        await _workspace.orchestrator.secondary.close()
        _workspace = None

app = FastAPI(title="StereoChem Backend", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

def _outcome_payload(ws: Workspace, **extra) -> dict:
    payload = ws.state()
    payload.update(extra)
    return payload

@app.get("/")
def health_check():
    return {"status": "ok", "version": "0.1.0"}

@app.get("/api/workspace")
def get_workspace_state(ws: Workspace = Depends(get_workspace)):
    return ws.state()

# --- editor ---

@app.post("/api/editor/tool")
def set_tool(request: ToolRequest, ws: Workspace = Depends(get_workspace)):
    try:
        ws.editor.set_tool(request.tool)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Unknown tool: {request.tool}")
    return ws.state()

@app.post("/api/editor/element")
def set_element(request: ElementRequest, ws: Workspace = Depends(get_workspace)):
    ws.editor.set_element(request.element)
    return ws.state()

@app.post("/api/editor/pointer")
def pointer(event: PointerEvent, ws: Workspace = Depends(get_workspace)):
    """Feeds one pointer event (device pixels) to the editor."""
    changed = False
    if event.kind == "down":
        changed = ws.editor.pointer_down(event.x, event.y)
    elif event.kind == "move":
        ws.editor.pointer_move(event.x, event.y)
    else:
        changed = ws.editor.pointer_up(event.x, event.y)
    return _outcome_payload(ws, changed=changed)

@app.post("/api/editor/zoom")
def zoom(request: ZoomRequest, ws: Workspace = Depends(get_workspace)):
    if request.direction == "in":
        ws.editor.zoom_in()
    else:
        ws.editor.zoom_out()
    return ws.state()

@app.post("/api/editor/center")
def center(ws: Workspace = Depends(get_workspace)):
    ws.editor.center_molecule()
    return ws.state()

@app.post("/api/editor/clear")
def clear(ws: Workspace = Depends(get_workspace)):
    """New Structure: empties the canvas and forgets the current analysis."""
    ws.new_structure()
    return ws.state()

@app.get("/api/editor/render.svg")
def render_svg(ws: Workspace = Depends(get_workspace)):
    return Response(content=ws.editor.to_svg(), media_type="image/svg+xml")

# --- resolve / analyze ---

@app.post("/api/molecule/search")
async def search_molecule(request: QueryRequest, ws: Workspace = Depends(get_workspace)):
    """
    Resolves a name or SMILES, loads it into the editor and analyses it.
    Falls back to PubChem when the AI provider is unavailable.
    """
    resolved, analysis = await ws.search(request.query)
    return _outcome_payload(
        ws,
        resolve=resolved.model_dump(exclude={"result"}),
        analyze=analysis.model_dump(exclude={"result"}) if analysis else None,
    )

@app.post("/api/molecule/alternative")
async def load_alternative(request: QueryRequest, ws: Workspace = Depends(get_workspace)):
    """Loads an isomer or conformation by SMILES."""
    resolved, analysis = await ws.load_alternative(request.query)
    return _outcome_payload(
        ws,
        resolve=resolved.model_dump(exclude={"result"}),
        analyze=analysis.model_dump(exclude={"result"}) if analysis else None,
    )

@app.post("/api/molecule/analyze")
async def analyze_molecule(request: AnalyzeRequest, ws: Workspace = Depends(get_workspace)):
    if request.molecule is not None:
        ws.load_molecule(request.molecule)
    outcome = await ws.analyze()
    return _outcome_payload(ws, analyze=outcome.model_dump(exclude={"result"}))

@app.post("/api/molecule/retry")
async def retry_analysis(ws: Workspace = Depends(get_workspace)):
    outcome = await ws.retry()
    return _outcome_payload(ws, analyze=outcome.model_dump(exclude={"result"}))

@app.post("/api/explain")
async def explain(request: ExplainRequest, ws: Workspace = Depends(get_workspace)):
    text = await ws.orchestrator.explain(request.topic)
    return {"topic": request.topic, "explanation": text}

@app.post("/api/molecule/visualize", response_model=Molecule)
async def visualize_molecule(request: dict):
    """
    Converts a mol_block (or a SMILES string) into an editor graph with 2D
    coordinates.
    """
    mol_block = request.get("mol_block")
    smiles = request.get("smiles")
    if not mol_block and not smiles:
        raise HTTPException(status_code=400, detail="mol_block or smiles is required")

    molecule = molblock_to_molecule(mol_block) if mol_block else None
    if molecule is None:
        # A SMILES string in the mol_block field is accepted too
        molecule = smiles_to_molecule(smiles or mol_block)
    if molecule is None:
        raise HTTPException(status_code=400, detail="Invalid molecule data")
    return molecule

@app.post("/api/export/sdf")
async def export_sdf(ws: Workspace = Depends(get_workspace)):
    """
    Writes the current drawing to an SDF file, plus the 3D record from the
    latest analysis when there is one.
    """
    if ws.editor.molecule.is_empty:
        raise HTTPException(status_code=400, detail="Nothing to export")

    view = ws.orchestrator.view()
    name = view.metadata.reference if view.metadata else ""
    try:
        output = io.StringIO()
        writer = Chem.SDWriter(output)

        mol = molecule_to_mol(ws.editor.molecule)
        mol.SetProp("_Name", name or "structure")
        writer.write(mol)

        if view.analysis and view.analysis.sdf_data:
            mol3d = Chem.MolFromMolBlock(view.analysis.sdf_data, removeHs=False, sanitize=False)
            if mol3d is not None:
                mol3d.UpdatePropertyCache(strict=False)
                mol3d.SetProp("_Name", f"{name or 'structure'} (3D)")
                writer.write(mol3d)

        writer.close()

        sdf_data = output.getvalue().encode("utf-8")
        return StreamingResponse(
            io.BytesIO(sdf_data),
            media_type="chemical/x-mdl-sdfile",
            headers={"Content-Disposition": "attachment; filename=stereochem.sdf"}
        )
    except Exception as e:
        logger.exception("SDF export failed")
        raise HTTPException(status_code=500, detail=str(e))

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("stereochem.main:app", host="0.0.0.0", port=8000, reload=True)
