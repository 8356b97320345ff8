"""
Resolution/analysis orchestration across the AI provider (primary) and
PubChem (secondary).

Every `resolve`/`analyze` call takes a fresh generation token. Results are
only applied to the orchestrator's state while their token is still the
newest one, so a slow response can never overwrite the outcome of a request
issued after it. Background property enrichment follows the same rule.
"""
import asyncio
import logging
import random
from enum import Enum
from typing import Awaitable, Callable, Optional
from pydantic import BaseModel
from stereochem.config import Settings, get_settings
from stereochem.errors import NoFallbackReference
from stereochem.models import (
    AnalysisResult,
    Molecule,
    MoleculeMetadata,
    PhysicalProperties,
    SearchResult,
)
from stereochem.services.cache import ResultCache, analysis_key, default_cache, explain_key, resolve_key
from stereochem.services.retry import retry_with_backoff

logger = logging.getLogger(__name__)

RESOLVED_VIA_FALLBACK = "AI provider offline. Molecule resolved via PubChem."
NOT_FOUND_ANYWHERE = "Molecule not found in AI or PubChem databases."
BASELINE_ONLY = "AI Analysis Limit Reached. Showing Baseline PubChem Data."
FALLBACK_FAILED = "Analysis failed. Quota reached and fallback resolution failed."
NO_FALLBACK_REFERENCE = "Analysis failed. Quota reached and no reference name found for fallback."
BASELINE_NOTE = (
    "AI analysis currently restricted due to quota. Displaying baseline structural "
    "and physical data from NIH PubChem databases."
)
BASELINE_DIPOLE = "Available in PubChem record"
EXPLANATION_UNAVAILABLE = "Information unavailable."

class OrchestratorState(str, Enum):
    IDLE = "idle"
    REQUESTING = "requesting"
    REQUESTING_FALLBACK = "requesting_fallback"
    SUCCESS = "success"
    SUCCESS_DEGRADED = "success_degraded"
    FAILED = "failed"

class ResolveOutcome(BaseModel):
    result: Optional[SearchResult] = None
    degraded: bool = False
    message: Optional[str] = None
    state: OrchestratorState = OrchestratorState.IDLE
    # False for local no-ops and for responses superseded by a newer request
    applied: bool = False

class AnalysisOutcome(BaseModel):
    result: Optional[AnalysisResult] = None
    degraded: bool = False
    message: Optional[str] = None
    state: OrchestratorState = OrchestratorState.IDLE
    applied: bool = False

class OrchestratorView(BaseModel):
    state: OrchestratorState
    analysis: Optional[AnalysisResult] = None
    metadata: Optional[MoleculeMetadata] = None
    message: Optional[str] = None
    degraded: bool = False

class Orchestrator:
    """
    `primary` must provide async `resolve(query)`, `analyze(molecule)` and
    `explain(topic)`; `secondary` async `resolve(query)`,
    `fetch_properties(query)` and `fetch_3d(query)`. Both raise
    `ChemistryServiceError` subclasses on failure.
    """

    def __init__(
        self,
        primary,
        secondary,
        cache: Optional[ResultCache] = None,
        settings: Optional[Settings] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: Optional[random.Random] = None,
    ):
        self.primary = primary
        self.secondary = secondary
        self.cache = cache if cache is not None else default_cache()
        self.settings = settings or get_settings()
        self._sleep = sleep
        self._rng = rng

        self.state = OrchestratorState.IDLE
        self.analysis: Optional[AnalysisResult] = None
        self.metadata: Optional[MoleculeMetadata] = None
        self.message: Optional[str] = None
        self.degraded = False
        self.last_molecule: Optional[Molecule] = None

        self._generation = 0
        self._revision = 0
        self._tasks: set[asyncio.Task] = set()

    # --- bookkeeping ---

    def _begin(self) -> int:
        self._generation += 1
        self.state = OrchestratorState.REQUESTING
        self.message = None
        self.degraded = False
        return self._generation

    def _is_current(self, token: int) -> bool:
        return token == self._generation

    def _transition(self, token: int, state: OrchestratorState):
        if self._is_current(token):
            self.state = state

    def _finish(self, token: int, state: OrchestratorState, message: Optional[str], degraded: bool) -> bool:
        if not self._is_current(token):
            logger.debug("Discarding superseded response (token %d, current %d)", token, self._generation)
            return False
        self.state = state
        self.message = message
        self.degraded = degraded
        return True

    def view(self) -> OrchestratorView:
        return OrchestratorView(
            state=self.state,
            analysis=self.analysis,
            metadata=self.metadata,
            message=self.message,
            degraded=self.degraded,
        )

    def molecule_changed(self, molecule: Optional[Molecule] = None):
        """Called on every edit of the drawn structure; pending enrichment no longer applies."""
        self._revision += 1

    def reset(self):
        """Forgets the current result and reference metadata ("New Structure")."""
        self._generation += 1
        self.state = OrchestratorState.IDLE
        self.analysis = None
        self.metadata = None
        self.message = None
        self.degraded = False
        self.last_molecule = None

    async def _call_primary(self, fn, retries: int, base_delay: float):
        return await retry_with_backoff(
            fn,
            retries=retries,
            base_delay=base_delay,
            growth=self.settings.retry_growth,
            jitter=self.settings.retry_jitter,
            sleep=self._sleep,
            rng=self._rng,
        )

    # --- resolve ---

    async def resolve(self, query: str) -> ResolveOutcome:
        query = (query or "").strip()
        if not query:
            return ResolveOutcome(state=self.state)

        token = self._begin()
        key = resolve_key(query)
        degraded = False

        result = self.cache.get(key)
        if result is None:
            try:
                result = await self._call_primary(
                    lambda: self.primary.resolve(query),
                    self.settings.resolve_retries,
                    self.settings.resolve_base_delay,
                )
                self.cache.set(key, result)
            except Exception as e:
                logger.warning("Search via AI failed (%s), trying PubChem direct...", e)
                self._transition(token, OrchestratorState.REQUESTING_FALLBACK)
                try:
                    result = await self.secondary.resolve(query)
                    degraded = True
                except Exception as fallback_error:
                    logger.warning("PubChem resolution failed for %r: %s", query, fallback_error)
                    applied = self._finish(token, OrchestratorState.FAILED, NOT_FOUND_ANYWHERE, False)
                    return ResolveOutcome(
                        state=OrchestratorState.FAILED,
                        message=NOT_FOUND_ANYWHERE,
                        applied=applied,
                    )

        state = OrchestratorState.SUCCESS_DEGRADED if degraded else OrchestratorState.SUCCESS
        message = RESOLVED_VIA_FALLBACK if degraded else None
        applied = self._finish(token, state, message, degraded)
        if applied:
            self.metadata = result.metadata
            self.analysis = None
        return ResolveOutcome(result=result, degraded=degraded, message=message, state=state, applied=applied)

    # --- analyze ---

    async def analyze(self, molecule: Optional[Molecule], metadata: Optional[MoleculeMetadata] = None) -> AnalysisOutcome:
        """
        Runs the full analysis of `molecule`. `metadata` overrides the naming
        metadata remembered from the last resolve as the fallback reference.
        """
        if molecule is None or molecule.is_empty:
            return AnalysisOutcome(state=self.state)

        snapshot = molecule.model_copy(deep=True)
        reference_metadata = metadata if metadata is not None else self.metadata
        token = self._begin()
        self.last_molecule = snapshot
        key = analysis_key(snapshot)

        result = self.cache.get(key)
        if result is None:
            try:
                result = await self._call_primary(
                    lambda: self.primary.analyze(snapshot),
                    self.settings.analyze_retries,
                    self.settings.analyze_base_delay,
                )
                self.cache.set(key, result)
            except Exception as e:
                logger.warning("AI analysis failed (%s), attempting PubChem fallback...", e)
                return await self._analyze_fallback(token, reference_metadata)

        applied = self._finish(token, OrchestratorState.SUCCESS, None, False)
        if applied:
            self.analysis = result
            self.metadata = result.metadata if result.metadata.reference else reference_metadata
            if result.metadata.smiles:
                self._schedule_enrichment(token, result.metadata.smiles)
        return AnalysisOutcome(result=result, state=OrchestratorState.SUCCESS, applied=applied)

    async def _analyze_fallback(self, token: int, metadata: Optional[MoleculeMetadata]) -> AnalysisOutcome:
        reference = metadata.reference if metadata else ""
        if not reference:
            logger.warning("%s", NoFallbackReference("no name or SMILES for the current structure"))
            applied = self._finish(token, OrchestratorState.FAILED, NO_FALLBACK_REFERENCE, False)
            if applied:
                self.metadata = metadata
            return AnalysisOutcome(state=OrchestratorState.FAILED, message=NO_FALLBACK_REFERENCE, applied=applied)

        self._transition(token, OrchestratorState.REQUESTING_FALLBACK)
        props, sdf = await asyncio.gather(
            self.secondary.fetch_properties(reference),
            self.secondary.fetch_3d(reference),
            return_exceptions=True,
        )
        if isinstance(props, Exception):
            logger.warning("PubChem properties unavailable for %r: %s", reference, props)
            props = PhysicalProperties()
        if isinstance(sdf, Exception):
            logger.warning("PubChem 3D record unavailable for %r: %s", reference, sdf)
            sdf = None

        if props.is_empty and not sdf:
            applied = self._finish(token, OrchestratorState.FAILED, FALLBACK_FAILED, False)
            if applied:
                self.metadata = metadata
            return AnalysisOutcome(state=OrchestratorState.FAILED, message=FALLBACK_FAILED, applied=applied)

        result = AnalysisResult(
            stereocenters=[],
            vsepr={},
            dipole_moment=BASELINE_DIPOLE,
            educational_note=BASELINE_NOTE,
            sdf_data=sdf or None,
            isomers=[],
            conformations=[],
            properties=props,
            metadata=metadata,
        )
        applied = self._finish(token, OrchestratorState.SUCCESS_DEGRADED, BASELINE_ONLY, True)
        if applied:
            self.analysis = result
            self.metadata = metadata
        return AnalysisOutcome(
            result=result,
            degraded=True,
            message=BASELINE_ONLY,
            state=OrchestratorState.SUCCESS_DEGRADED,
            applied=applied,
        )

    async def retry_analysis(self) -> AnalysisOutcome:
        """Manual "Retry AI": a fresh analyze() of the last analysed molecule."""
        if self.last_molecule is None:
            return AnalysisOutcome(state=self.state)
        return await self.analyze(self.last_molecule)

    # --- enrichment ---

    def _schedule_enrichment(self, token: int, smiles: str):
        task = asyncio.create_task(self._enrich(token, self._revision, smiles))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _enrich(self, token: int, revision: int, smiles: str):
        try:
            props = await self.secondary.fetch_properties(smiles)
        except Exception as e:
            # Enrichment is best-effort; the primary result stands as-is
            logger.warning("PubChem enrichment skipped: %s", e)
            return
        if not self._is_current(token) or revision != self._revision or self.analysis is None:
            logger.debug("Discarding stale enrichment for %s", smiles)
            return
        self.analysis = self.analysis.model_copy(
            update={"properties": self.analysis.properties.merged(props)}
        )

    async def drain(self):
        """Waits for outstanding enrichment tasks."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # --- explanations ---

    async def explain(self, topic: str) -> str:
        topic = (topic or "").strip()
        if not topic:
            return EXPLANATION_UNAVAILABLE
        key = explain_key(topic)
        cached = self.cache.get(key)
        if cached is not None:
            return cached
        try:
            text = await self._call_primary(
                lambda: self.primary.explain(topic),
                self.settings.resolve_retries,
                self.settings.resolve_base_delay,
            )
        except Exception as e:
            logger.warning("Explanation for %r unavailable: %s", topic, e)
            return EXPLANATION_UNAVAILABLE
        self.cache.set(key, text)
        return text
