"""
PubChem PUG-REST client: the secondary (fallback) data source.

Every lookup keyed on a free-text query tries it as a compound name first
and then as a SMILES string, since callers can't always tell which one they
hold.
"""
import asyncio
import logging
from typing import Optional
from urllib.parse import quote
import aiohttp
from stereochem.config import Settings, get_settings
from stereochem.errors import MalformedResponse, NotFound, ProviderUnavailable
from stereochem.models import Atom, Bond, Molecule, MoleculeMetadata, PhysicalProperties, SearchResult
from stereochem.chemistry.constants import BOND_TYPE_BY_ORDER, SYMBOL_BY_ATOMIC_NUMBER
from stereochem.chemistry.molecule import to_layout
from stereochem.ai.normalize import clean_sdf

logger = logging.getLogger(__name__)

LOOKUP_NAMESPACES = ("name", "smiles")
PROPERTY_FIELDS = "MolecularWeight,XLogP,HBondDonorCount,HBondAcceptorCount,IUPACName,MolecularFormula"
NAMING_FIELDS = "IUPACName,CanonicalSMILES,MolecularFormula"
SEE_RECORD = "See PubChem Record"

def _first_properties(js: dict) -> dict:
    props = (js.get("PropertyTable") or {}).get("Properties") or []
    if not props or not isinstance(props[0], dict):
        raise MalformedResponse("PubChem property table is empty", provider="pubchem")
    return props[0]

class PubChemClient:
    name = "pubchem"

    def __init__(self, settings: Optional[Settings] = None, session: Optional[aiohttp.ClientSession] = None):
        self.settings = settings or get_settings()
        self.base_url = self.settings.pubchem_url.rstrip("/")
        self._session = session

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        await self.close()

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.settings.http_timeout)
            )
        return self._session

    async def close(self):
        if self._session is not None and not self._session.closed:
            await self._session.close()

    def _url(self, *parts: str) -> str:
        return "/".join([self.base_url, *parts])

    async def _get_text(self, url: str) -> str:
        try:
            async with self._get_session().get(url) as resp:
                if resp.status == 404:
                    raise NotFound(f"PubChem has no record for {url}", provider=self.name)
                if resp.status >= 400:
                    raise ProviderUnavailable(f"HTTP {resp.status} from PubChem", provider=self.name)
                return await resp.text()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise ProviderUnavailable(f"PubChem request failed: {e}", provider=self.name) from e

    async def _get_json(self, url: str) -> dict:
        try:
            async with self._get_session().get(url, headers={"Accept": "application/json"}) as resp:
                if resp.status == 404:
                    raise NotFound(f"PubChem has no record for {url}", provider=self.name)
                if resp.status >= 400:
                    raise ProviderUnavailable(f"HTTP {resp.status} from PubChem", provider=self.name)
                try:
                    js = await resp.json(content_type=None)
                except ValueError as e:
                    raise MalformedResponse(f"PubChem returned invalid JSON: {e}", provider=self.name) from e
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise ProviderUnavailable(f"PubChem request failed: {e}", provider=self.name) from e

        if not isinstance(js, dict):
            raise MalformedResponse("PubChem returned a non-object payload", provider=self.name)
        # PubChem sometimes returns 200 with a Fault payload
        fault = js.get("Fault")
        if fault:
            details = fault.get("Details") or []
            msg = details[0] if details else fault.get("Message", "PubChem fault")
            raise NotFound(str(msg), provider=self.name)
        return js

    async def lookup_cid(self, query: str) -> int:
        """CID for a name, falling back to treating the query as SMILES."""
        enc = quote(query.strip(), safe="")
        for namespace in LOOKUP_NAMESPACES:
            try:
                js = await self._get_json(self._url("compound", namespace, enc, "cids", "JSON"))
            except (NotFound, ProviderUnavailable) as e:
                logger.debug("PubChem %s lookup for %r failed: %s", namespace, query, e)
                continue
            cids = (js.get("IdentifierList") or {}).get("CID") or []
            if cids and isinstance(cids[0], int) and cids[0] > 0:
                return cids[0]
        raise NotFound(
            "Could not find molecule in PubChem. Try a common name or a formal SMILES string.",
            provider=self.name
        )

    async def fetch_properties(self, query: str) -> PhysicalProperties:
        cid = await self.lookup_cid(query)
        props = _first_properties(
            await self._get_json(self._url("compound", "cid", str(cid), "property", PROPERTY_FIELDS, "JSON"))
        )
        weight = props.get("MolecularWeight")
        xlogp = props.get("XLogP")
        return PhysicalProperties(
            molecular_weight=f"{weight} g/mol" if weight else "N/A",
            log_p=str(xlogp) if xlogp is not None else "N/A",
            h_bond_donors=props.get("HBondDonorCount") or 0,
            h_bond_acceptors=props.get("HBondAcceptorCount") or 0,
            boiling_point=SEE_RECORD,
            melting_point=SEE_RECORD,
        )

    async def resolve(self, query: str) -> SearchResult:
        cid = await self.lookup_cid(query)

        meta = _first_properties(
            await self._get_json(self._url("compound", "cid", str(cid), "property", NAMING_FIELDS, "JSON"))
        )
        record = await self._get_json(self._url("compound", "cid", str(cid), "JSON"))
        molecule = self.parse_compound_record(record)

        smiles = meta.get("CanonicalSMILES") or meta.get("SMILES") or meta.get("IsomericSMILES") or ""
        return SearchResult(
            molecule=molecule,
            metadata=MoleculeMetadata(
                smiles=smiles,
                iupac_name=meta.get("IUPACName") or query,
                common_name=query,
                formula=meta.get("MolecularFormula") or "",
            )
        )

    @staticmethod
    def parse_compound_record(record: dict) -> Molecule:
        """
        Converts a PC_Compounds JSON record (with 2D conformer) into an editor
        graph. Elements outside the supported set are drawn as carbon.
        """
        try:
            compound = record["PC_Compounds"][0]
            aid = compound["atoms"]["aid"]
            elements = compound["atoms"]["element"]
            conformer = compound["coords"][0]["conformers"][0]
            xs, ys = conformer["x"], conformer["y"]
            if min(len(elements), len(xs), len(ys)) < len(aid):
                raise MalformedResponse("PubChem record has fewer coordinates than atoms", provider="pubchem")
        except (KeyError, IndexError, TypeError) as e:
            raise MalformedResponse("PubChem record missing structural coordinates", provider="pubchem") from e

        charges = {}
        for entry in compound["atoms"].get("charge") or []:
            if isinstance(entry, dict) and "aid" in entry:
                charges[entry["aid"]] = int(entry.get("value", 0))

        atoms = []
        for i, atom_id in enumerate(aid):
            x, y = to_layout(xs[i], ys[i])
            atoms.append(Atom(
                id=f"pc-{atom_id}",
                element=SYMBOL_BY_ATOMIC_NUMBER.get(elements[i], "C"),
                x=x,
                y=y,
                formal_charge=charges.get(atom_id, 0),
            ))

        bonds = []
        raw_bonds = compound.get("bonds") or {}
        aid1 = raw_bonds.get("aid1") or []
        aid2 = raw_bonds.get("aid2") or []
        orders = raw_bonds.get("order") or []
        for i in range(min(len(aid1), len(aid2))):
            order = orders[i] if i < len(orders) else 1
            bonds.append(Bond(
                id=f"pc-b-{i}",
                source=f"pc-{aid1[i]}",
                target=f"pc-{aid2[i]}",
                type=BOND_TYPE_BY_ORDER.get(order, "single"),
            ))

        return Molecule(atoms=atoms, bonds=bonds)

    async def fetch_3d(self, query: str) -> str:
        """3D SDF by name, then by SMILES."""
        enc = quote(query.strip(), safe="")
        for namespace in LOOKUP_NAMESPACES:
            try:
                text = await self._get_text(self._url("compound", namespace, enc, "SDF") + "?record_type=3d")
            except (NotFound, ProviderUnavailable) as e:
                logger.debug("PubChem 3D %s lookup for %r failed: %s", namespace, query, e)
                continue
            sdf = clean_sdf(text)
            if sdf:
                return sdf
        raise NotFound(f"No 3D conformer in PubChem for '{query}'", provider=self.name)
