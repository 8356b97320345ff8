import pytest
import aiohttp
from unittest.mock import AsyncMock, MagicMock, patch
from stereochem.config import Settings
from stereochem.errors import MalformedResponse, NotFound, ProviderUnavailable
from stereochem.services.pubchem import PubChemClient

BASE = "https://pubchem.example/rest/pug"

ETHANOL_RECORD = {
    "PC_Compounds": [{
        "atoms": {"aid": [1, 2, 3], "element": [8, 6, 6], "charge": [{"aid": 1, "value": -1}]},
        "bonds": {"aid1": [1, 2], "aid2": [2, 3], "order": [1, 2]},
        "coords": [{"conformers": [{"x": [0.0, 1.0, 2.0], "y": [0.0, 0.5, 0.0]}]}],
    }]
}

SDF = "702\n  -OEChem-\n\n  9  8  0     0  0  0  0  0  0999 V2000\nM  END\n$$$$\n"

def make_client(session=None):
    return PubChemClient(Settings(pubchem_url=BASE), session=session)

def fake_session(status=200, payload=None, text=""):
    resp = MagicMock()
    resp.status = status
    resp.json = AsyncMock(return_value=payload)
    resp.text = AsyncMock(return_value=text)
    session = MagicMock()
    session.closed = False
    session.get.return_value.__aenter__.return_value = resp
    return session

# --- HTTP layer ---

@pytest.mark.asyncio
async def test_get_json_returns_payload():
    client = make_client(fake_session(payload={"IdentifierList": {"CID": [702]}}))
    assert await client._get_json(f"{BASE}/x") == {"IdentifierList": {"CID": [702]}}

@pytest.mark.asyncio
async def test_get_json_fault_is_not_found():
    client = make_client(fake_session(payload={"Fault": {"Code": "PUGREST.NotFound", "Details": ["No CID found"]}}))
    with pytest.raises(NotFound):
        await client._get_json(f"{BASE}/x")

@pytest.mark.asyncio
@pytest.mark.parametrize("status,error", [(404, NotFound), (503, ProviderUnavailable)])
async def test_get_json_maps_status(status, error):
    client = make_client(fake_session(status=status))
    with pytest.raises(error):
        await client._get_json(f"{BASE}/x")

@pytest.mark.asyncio
async def test_get_json_invalid_body_is_malformed():
    session = fake_session()
    session.get.return_value.__aenter__.return_value.json = AsyncMock(side_effect=ValueError("bad json"))
    with pytest.raises(MalformedResponse):
        await make_client(session)._get_json(f"{BASE}/x")

@pytest.mark.asyncio
async def test_connection_error_is_unavailable():
    session = fake_session()
    session.get.side_effect = aiohttp.ClientConnectionError("refused")
    with pytest.raises(ProviderUnavailable):
        await make_client(session)._get_text(f"{BASE}/x")

# --- lookups ---

@pytest.mark.asyncio
async def test_lookup_cid_falls_back_to_smiles_namespace():
    client = make_client()
    calls = []

    async def get_json(url):
        calls.append(url)
        if "/compound/name/" in url:
            raise NotFound("no such name")
        return {"IdentifierList": {"CID": [702]}}

    with patch.object(client, "_get_json", side_effect=get_json):
        assert await client.lookup_cid("CCO") == 702

    assert calls == [f"{BASE}/compound/name/CCO/cids/JSON", f"{BASE}/compound/smiles/CCO/cids/JSON"]

@pytest.mark.asyncio
async def test_lookup_cid_not_found_anywhere():
    client = make_client()
    with patch.object(client, "_get_json", AsyncMock(return_value={"IdentifierList": {"CID": [0]}})):
        with pytest.raises(NotFound):
            await client.lookup_cid("unobtainium")

@pytest.mark.asyncio
async def test_fetch_properties():
    client = make_client()
    responses = [
        {"IdentifierList": {"CID": [702]}},
        {"PropertyTable": {"Properties": [{
            "CID": 702, "MolecularWeight": "46.07", "XLogP": -0.1,
            "HBondDonorCount": 1, "HBondAcceptorCount": 1,
        }]}},
    ]
    with patch.object(client, "_get_json", AsyncMock(side_effect=responses)):
        props = await client.fetch_properties("ethanol")

    assert props.molecular_weight == "46.07 g/mol"
    assert props.log_p == "-0.1"
    assert props.h_bond_donors == 1
    assert props.boiling_point == "See PubChem Record"
    assert not props.is_empty

@pytest.mark.asyncio
async def test_resolve_builds_graph_and_metadata():
    client = make_client()
    responses = [
        {"IdentifierList": {"CID": [702]}},
        {"PropertyTable": {"Properties": [{
            "IUPACName": "ethanol", "CanonicalSMILES": "CCO", "MolecularFormula": "C2H6O",
        }]}},
        ETHANOL_RECORD,
    ]
    with patch.object(client, "_get_json", AsyncMock(side_effect=responses)):
        result = await client.resolve("ethyl alcohol")

    assert result.metadata.iupac_name == "ethanol"
    assert result.metadata.smiles == "CCO"
    assert result.metadata.common_name == "ethyl alcohol"
    assert [a.element for a in result.molecule.atoms] == ["O", "C", "C"]
    assert len(result.molecule.bonds) == 2

def test_parse_compound_record_maps_coordinates():
    mol = PubChemClient.parse_compound_record(ETHANOL_RECORD)
    oxygen, c1, c2 = mol.atoms
    assert (oxygen.x, oxygen.y) == (500.0, 400.0)
    assert (c1.x, c1.y) == (540.0, 380.0)
    assert oxygen.formal_charge == -1
    assert c1.formal_charge == 0
    assert mol.bonds[1].type == "double"
    assert mol.bonds[0].source == oxygen.id and mol.bonds[0].target == c1.id

def test_parse_compound_record_without_coordinates():
    with pytest.raises(MalformedResponse):
        PubChemClient.parse_compound_record({"PC_Compounds": [{"atoms": {"aid": [1], "element": [6]}}]})

@pytest.mark.parametrize("x, y, element", [
    ([0.0], [0.0, 1.0], [6, 8]),
    ([0.0, 1.0], [0.0], [6, 8]),
    ([0.0, 1.0], [0.0, 1.0], [6]),
])
def test_parse_compound_record_with_short_arrays(x, y, element):
    record = {"PC_Compounds": [{
        "atoms": {"aid": [1, 2], "element": element},
        "coords": [{"conformers": [{"x": x, "y": y}]}],
    }]}
    with pytest.raises(MalformedResponse):
        PubChemClient.parse_compound_record(record)

@pytest.mark.asyncio
async def test_fetch_3d_tries_smiles_after_name():
    client = make_client()
    get_text = AsyncMock(side_effect=[NotFound("no 3d by name"), SDF])
    with patch.object(client, "_get_text", get_text):
        sdf = await client.fetch_3d("CCO")

    assert sdf == SDF.strip()
    assert get_text.await_args_list[1].args[0] == f"{BASE}/compound/smiles/CCO/SDF?record_type=3d"

@pytest.mark.asyncio
async def test_fetch_3d_not_found():
    client = make_client()
    with patch.object(client, "_get_text", AsyncMock(side_effect=ProviderUnavailable("down"))):
        with pytest.raises(NotFound):
            await client.fetch_3d("glucose")
