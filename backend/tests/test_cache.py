from stereochem.models import AnalysisResult, Atom, Molecule, Stereocenter
from stereochem.services.cache import ResultCache, analysis_key, resolve_key

def make_molecule(x=0.0):
    return Molecule(atoms=[Atom(id="a", element="C", x=x, y=0.0)])

def test_get_miss_returns_none():
    cache = ResultCache()
    assert cache.get("resolve:nothing") is None
    assert len(cache) == 0

def test_entries_are_isolated_from_callers():
    cache = ResultCache()
    result = AnalysisResult(stereocenters=[Stereocenter(atom_id="a", configuration="R")])
    cache.set("k", result)

    result.stereocenters.clear()
    fetched = cache.get("k")
    assert len(fetched.stereocenters) == 1

    fetched.stereocenters.clear()
    assert len(cache.get("k").stereocenters) == 1

def test_plain_values_are_stored_as_is():
    cache = ResultCache()
    cache.set("explain:chirality", "Handedness.")
    assert "explain:chirality" in cache
    assert cache.get("explain:chirality") == "Handedness."
    cache.clear()
    assert "explain:chirality" not in cache

def test_resolve_key_ignores_case_and_padding():
    assert resolve_key("  Glucose ") == resolve_key("glucose")

def test_analysis_key_tracks_graph_content():
    assert analysis_key(make_molecule()) == analysis_key(make_molecule())
    assert analysis_key(make_molecule()) != analysis_key(make_molecule(x=1.0))
