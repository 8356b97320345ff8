ELEMENTS = {
    # symbol: display colour, atomic number
    "C": {"color": "#444444", "atomic_number": 6},
    "H": {"color": "#FFFFFF", "atomic_number": 1},
    "O": {"color": "#FF0000", "atomic_number": 8},
    "N": {"color": "#0000FF", "atomic_number": 7},
    "Cl": {"color": "#00FF00", "atomic_number": 17},
    "F": {"color": "#90EE90", "atomic_number": 9},
    "Br": {"color": "#A52A2A", "atomic_number": 35},
    "I": {"color": "#9400D3", "atomic_number": 53},
    "P": {"color": "#FFA500", "atomic_number": 15},
    "S": {"color": "#FFFF00", "atomic_number": 16},
}

# Palette order shown next to the editor
ELEMENT_PALETTE = ["C", "H", "O", "N", "F", "Cl", "Br", "I", "P", "S"]

SYMBOL_BY_ATOMIC_NUMBER = {v["atomic_number"]: k for k, v in ELEMENTS.items()}

BOND_TYPE_BY_ORDER = {1: "single", 2: "double", 3: "triple"}

# Database 2D coordinates are in Angstrom-like units; the editor works in
# pixel-like model units around (500, 400).
LAYOUT_SCALE = 40.0
LAYOUT_ORIGIN_X = 500.0
LAYOUT_ORIGIN_Y = 400.0

def coerce_element(symbol) -> str:
    """Maps an arbitrary symbol onto the supported subset, defaulting to carbon."""
    if not isinstance(symbol, str):
        return "C"
    s = symbol.strip()
    if s in ELEMENTS:
        return s
    s = s.capitalize()
    return s if s in ELEMENTS else "C"

def element_color(symbol: str) -> str:
    return ELEMENTS.get(symbol, {}).get("color", "#000000")
