import logging
from typing import Optional
from stereochem.models import Molecule
from stereochem.chemistry.constants import ELEMENT_PALETTE
from stereochem.chemistry.molecule import molecule_to_smiles
from stereochem.editor.canvas import StructureEditor
from stereochem.services.orchestrator import AnalysisOutcome, Orchestrator, ResolveOutcome

logger = logging.getLogger(__name__)

class Workspace:
    """
    One editing session: the structure editor plus the orchestrator that
    names and analyses whatever is on the canvas.
    """

    def __init__(self, orchestrator: Orchestrator, editor: Optional[StructureEditor] = None):
        self.orchestrator = orchestrator
        self.editor = editor or StructureEditor()
        self._editor_callback = self.editor.on_change
        self.editor.on_change = self._on_edit

    def _on_edit(self, molecule: Molecule):
        self.orchestrator.molecule_changed(molecule)
        if self._editor_callback:
            self._editor_callback(molecule)

    async def search(self, query: str) -> tuple[ResolveOutcome, Optional[AnalysisOutcome]]:
        """
        Resolve `query`; on success load the structure, reset the selection,
        center the view and analyse it.
        """
        outcome = await self.orchestrator.resolve(query)
        if not outcome.applied or outcome.result is None:
            return outcome, None

        self.editor.load(outcome.result.molecule)
        self.editor.center_molecule()
        logger.info("Loaded %d atoms for %r", len(outcome.result.molecule.atoms), query)
        analysis = await self.orchestrator.analyze(self.editor.snapshot(), metadata=outcome.result.metadata)
        return outcome, analysis

    async def load_alternative(self, smiles: str) -> tuple[ResolveOutcome, Optional[AnalysisOutcome]]:
        """Loads an isomer or conformation by its SMILES through the search path."""
        return await self.search(smiles)

    async def analyze(self) -> AnalysisOutcome:
        return await self.orchestrator.analyze(self.editor.snapshot())

    async def retry(self) -> AnalysisOutcome:
        return await self.orchestrator.retry_analysis()

    def new_structure(self):
        self.editor.clear()
        self.orchestrator.reset()

    def load_molecule(self, molecule: Molecule):
        self.editor.load(molecule)
        self.editor.center_molecule()

    def state(self) -> dict:
        view = self.orchestrator.view()
        return {
            "molecule": self.editor.molecule.model_dump(),
            "metadata": view.metadata.model_dump() if view.metadata else None,
            "analysis": view.analysis.model_dump() if view.analysis else None,
            "status": view.message,
            "degraded": view.degraded,
            "state": view.state.value,
            "drawn_smiles": molecule_to_smiles(self.editor.molecule),
            "tool": self.editor.tool.value,
            "element": self.editor.element,
            "palette": ELEMENT_PALETTE,
            "selected_atom_id": self.editor.selected_atom_id,
            "view": {
                "scale": self.editor.view.scale,
                "offset_x": self.editor.view.offset_x,
                "offset_y": self.editor.view.offset_y,
            },
        }
