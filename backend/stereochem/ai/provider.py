import json
import logging
from typing import Optional
import openai
from openai import AsyncOpenAI
from stereochem.config import Settings, get_settings
from stereochem.errors import (
    MalformedResponse,
    NotFound,
    ProviderUnavailable,
    RateLimited,
)
from stereochem.models import AnalysisResult, Molecule, SearchResult
from stereochem.ai.normalize import decode_analysis, decode_search, parse_json_payload

logger = logging.getLogger(__name__)

RATE_LIMIT_MARKERS = ("429", "resource_exhausted", "rate limit", "rate_limit", "quota")

ANALYSIS_SYSTEM_PROMPT = """You are a professional chemical informatics engine.
Always respond with a single valid JSON object and nothing else.
The 'sdfData' field MUST contain a raw V2000 SDF string without markdown code blocks.
Coordinates in 'sdfData' must reflect 3D geometry.

Response shape:
{
  "stereocenters": [{"atomId": str, "configuration": "R" | "S" | "None", "logic": str}],
  "vsepr": [{"atomId": str, "axeNotation": str, "lonePairs": int,
             "electronicGeometry": str, "molecularGeometry": str, "bondAngles": str}],
  "dipoleMoment": str,
  "educationalNote": str,
  "sdfData": str,
  "isomers": [{"name": str, "smiles": str, "type": "enantiomer" | "diastereomer" | "constitutional",
               "description": str}],
  "conformations": [{"name": str, "smiles": str, "energyScore": str, "description": str}],
  "properties": {"molecularWeight": str, "logP": str, "boilingPoint": str, "meltingPoint": str},
  "metadata": {"smiles": str, "iupacName": str, "commonName": str, "formula": str}
}
"""

RESOLVE_SYSTEM_PROMPT = """You convert chemical names or SMILES into 2D skeletal graphs.
Always respond with a single valid JSON object and nothing else.

Response shape:
{
  "molecule": {
    "atoms": [{"id": str, "element": str, "x": number, "y": number}],
    "bonds": [{"id": str, "from": str, "to": str, "type": "single" | "double" | "triple"}]
  },
  "metadata": {"smiles": str, "iupacName": str, "commonName": str, "formula": str}
}

Element symbols must be one of C, H, O, N, F, Cl, Br, I, P, S.
Lay the atoms out around (500, 400) with bonds about 55 units long.
"""

EXPLAIN_SYSTEM_PROMPT = "You are a concise chemistry tutor. Answer in two or three sentences."

def is_rate_limit(error: Exception) -> bool:
    """True when an error looks like a quota/rate-limit signal rather than an outage."""
    if isinstance(error, openai.RateLimitError):
        return True
    status = getattr(error, "status_code", None)
    if status == 429:
        return True
    text = str(error).lower()
    return any(marker in text for marker in RATE_LIMIT_MARKERS)

class AIProvider:
    """
    Primary data source: an OpenAI-compatible chat endpoint (OpenRouter by
    default) asked for JSON. Every public method either returns a decoded
    model or raises a `ChemistryServiceError` subclass.
    """

    name = "ai"

    def __init__(self, settings: Optional[Settings] = None, client: Optional[AsyncOpenAI] = None):
        self.settings = settings or get_settings()
        self._client = client

    @property
    def client(self) -> AsyncOpenAI:
        # Created lazily so env vars loaded after import are picked up
        if self._client is None:
            if not self.settings.ai_api_key:
                logger.warning("OPENROUTER_API_KEY not found.")
            self._client = AsyncOpenAI(
                base_url=self.settings.ai_base_url,
                api_key=self.settings.ai_api_key or "sk-or-placeholder",
                timeout=self.settings.http_timeout * 6,
            )
        return self._client

    async def _complete(self, system: str, user: str, json_mode: bool = True) -> str:
        kwargs = {}
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}
        try:
            response = await self.client.chat.completions.create(
                model=self.settings.ai_model,
                messages=[
                    {"role": "system", "content": system},
                    {"role": "user", "content": user},
                ],
                **kwargs
            )
        except openai.APIStatusError as e:
            if is_rate_limit(e):
                raise RateLimited(str(e), provider=self.name) from e
            raise ProviderUnavailable(f"AI provider returned {e.status_code}: {e}", provider=self.name) from e
        except openai.APIError as e:
            # Connection errors, timeouts
            if is_rate_limit(e):
                raise RateLimited(str(e), provider=self.name) from e
            raise ProviderUnavailable(str(e), provider=self.name) from e

        try:
            content = response.choices[0].message.content
        except (AttributeError, IndexError, TypeError) as e:
            raise MalformedResponse("AI response has no message content", provider=self.name) from e
        if not isinstance(content, str):
            raise MalformedResponse("AI response has no message content", provider=self.name)
        return content

    async def resolve(self, query: str) -> SearchResult:
        content = await self._complete(
            RESOLVE_SYSTEM_PROMPT,
            f'Convert chemical name or SMILES "{query}" to a 2D skeletal graph (JSON atoms/bonds).'
        )
        result = decode_search(parse_json_payload(content))
        if result.molecule.is_empty:
            raise NotFound(f"AI provider could not resolve '{query}'", provider=self.name)
        return result

    async def analyze(self, molecule: Molecule) -> AnalysisResult:
        graph = {
            "atoms": [a.model_dump() for a in molecule.atoms],
            "bonds": [{"id": b.id, "from": b.source, "to": b.target, "type": b.type} for b in molecule.bonds],
        }
        content = await self._complete(
            ANALYSIS_SYSTEM_PROMPT,
            f"""Analyze 2D molecular graph: {json.dumps(graph)}.

        MANDATORY:
        1. Provide accurate IUPAC/SMILES.
        2. For cyclic structures (e.g. cyclohexane), include stable conformations.
        3. Return a perfectly valid 3D SDF string in 'sdfData'.
        4. List stereocenters and VSEPR data for each heavy atom, keyed by the atom ids above."""
        )
        return decode_analysis(parse_json_payload(content))

    async def explain(self, topic: str) -> str:
        content = await self._complete(EXPLAIN_SYSTEM_PROMPT, f'Briefly explain "{topic}".', json_mode=False)
        content = content.strip()
        if not content:
            raise MalformedResponse("Empty explanation", provider=self.name)
        return content

    async def close(self):
        if self._client is not None:
            await self._client.close()
