"""
Compound Library - YAML-backed lookup of aqueous species, solvents and minerals.

Loads compound records (formula, phase, molar volume, kinetic dissolution
data) from ``databases/compounds.yaml`` on first access and resolves user
supplied names flexibly:

1. Exact name
2. Case-insensitive name
3. Normalized name (unicode subscripts, phase suffix, charge notation)
4. Normalized formula
5. Synonyms

Charge notation is canonicalized to the PHREEQC form, so ``Ca2+``, ``Ca++``,
``Ca⁺²`` and ``Ca+2`` all resolve to the same record.
"""

from collections import defaultdict
from pathlib import Path
from typing import Dict, List, Optional
import logging
import re

import yaml

from core.thermo_state import CompoundPhase, CompoundRecord

logger = logging.getLogger(__name__)


# ============================================================================
# Formula Parsing
# ============================================================================

_SUBSCRIPT_MAP = str.maketrans(
    "₀₁₂₃₄₅₆₇₈₉⁰¹²³⁴⁵⁶⁷⁸⁹⁺⁻",
    "01234567890123456789+-",
)

_PHASE_SUFFIX_RE = re.compile(r"\s*\((aq|s|l|g|cr|am)\)\s*$", re.IGNORECASE)
_HYDRATE_SPLIT_RE = re.compile(r"\s*(?:[·•*]|\.(?=\s*\d*\s*H2O))\s*")
_TOKEN_RE = re.compile(r"[A-Z][a-z]?|\(|\)|\[|\]|\d+(?:\.\d+)?")
_CHARGE_SUFFIX_RE = re.compile(r"[+-]+\d*$")
_NUMBER_RE = re.compile(r"^\d+(?:\.\d+)?$")
_LEADING_COEFF_RE = re.compile(r"^(\d+(?:\.\d+)?)\s*(?=[A-Z(\[])")


def _clean(name: str) -> str:
    """Strip whitespace, map unicode sub/superscripts to ASCII, drop phase suffix"""
    text = name.strip().translate(_SUBSCRIPT_MAP)
    return _PHASE_SUFFIX_RE.sub("", text)


def _parse_group(formula: str) -> Dict[str, float]:
    tokens = _TOKEN_RE.findall(formula)
    if "".join(tokens) != formula.replace(" ", ""):
        raise ValueError(f"Unparseable chemical formula: '{formula}'")

    stack: List[Dict[str, float]] = [defaultdict(float)]
    i = 0
    while i < len(tokens):
        token = tokens[i]
        if token in ("(", "["):
            stack.append(defaultdict(float))
            i += 1
        elif token in (")", "]"):
            if len(stack) == 1:
                raise ValueError(f"Unbalanced parentheses in formula: '{formula}'")
            group = stack.pop()
            i += 1
            multiplier = 1.0
            if i < len(tokens) and _NUMBER_RE.match(tokens[i]):
                multiplier = float(tokens[i])
                i += 1
            for element, count in group.items():
                stack[-1][element] += count * multiplier
        elif _NUMBER_RE.match(token):
            raise ValueError(f"Unexpected number '{token}' in formula: '{formula}'")
        else:
            i += 1
            count = 1.0
            if i < len(tokens) and _NUMBER_RE.match(tokens[i]):
                count = float(tokens[i])
                i += 1
            stack[-1][token] += count

    if len(stack) != 1:
        raise ValueError(f"Unbalanced parentheses in formula: '{formula}'")
    return dict(stack[0])


def parse_chemical_formula(formula: str) -> Dict[str, float]:
    """
    Parse a chemical formula into element counts.

    Handles nested parentheses/brackets, hydrate notation (``·``, ``*`` or
    ``.`` before water), unicode subscripts, phase suffixes and trailing
    charge (``+``, ``-2``, ``++``). Digits written before a bare sign belong
    to the formula (``NH4+`` is NH4 with charge +1).

    Args:
        formula: Formula string (e.g., "CaMg(CO3)2", "CaSO4·2H2O", "SO4-2")

    Returns:
        Mapping of element symbol to count

    Raises:
        ValueError: If the formula is empty or cannot be parsed

    Example:
        >>> parse_chemical_formula("CaSO4·2H2O")
        {'Ca': 1.0, 'S': 1.0, 'O': 6.0, 'H': 4.0}
    """
    if not formula or not formula.strip():
        raise ValueError("Chemical formula must be a non-empty string")

    text = _clean(formula)
    text = _CHARGE_SUFFIX_RE.sub("", text)

    composition: Dict[str, float] = defaultdict(float)
    for part in _HYDRATE_SPLIT_RE.split(text):
        if not part:
            continue
        coefficient = 1.0
        match = _LEADING_COEFF_RE.match(part)
        if match:
            coefficient = float(match.group(1))
            part = part[match.end():]
        for element, count in _parse_group(part).items():
            composition[element] += count * coefficient

    if not composition:
        raise ValueError(f"No elements found in formula: '{formula}'")
    return dict(composition)


def candidate_keys(name: str) -> List[str]:
    """
    Normalized lookup keys for a compound name, most likely first.

    Charge is rewritten to PHREEQC notation (sign then magnitude, magnitude
    omitted for 1). A name such as ``Ca2+`` is ambiguous between charge 2 and
    a formula ending in 2, so both readings are returned.
    """
    text = _clean(name).replace(" ", "")
    if not text:
        return []

    keys: List[str] = []
    phreeqc_form = re.match(r"^(.+?)([+-])(\d+)$", text)
    repeated_sign = re.match(r"^(.+?)(\++|-+)$", text)
    if phreeqc_form:
        base, sign, digits = phreeqc_form.groups()
        magnitude = int(digits)
        keys.append(base + sign + (str(magnitude) if magnitude > 1 else ""))
    elif repeated_sign:
        base, signs = repeated_sign.groups()
        sign = signs[0]
        if len(signs) > 1:
            keys.append(base + sign + str(len(signs)))
        else:
            trailing = re.match(r"^(.*[A-Za-z)\]])(\d+)$", base)
            if trailing:
                stem, digits = trailing.groups()
                for split in range(len(digits) - 1, -1, -1):
                    magnitude = int(digits[split:])
                    keys.append(stem + digits[:split] + sign + (str(magnitude) if magnitude > 1 else ""))
            keys.append(base + sign)
    else:
        keys.append(text)

    return [key.lower() for key in keys]


# ============================================================================
# Compound Library
# ============================================================================

class CompoundLibrary:
    """
    Lazily loaded compound database with flexible name resolution.

    Example:
        >>> library = CompoundLibrary()
        >>> library.find_flexible("calcium").name
        'Ca+2'
        >>> library.find_flexible("Calcite(s)").formula
        'CaCO3'
    """

    def __init__(self, yaml_path: Optional[str] = None):
        """
        Initialize compound library.

        Args:
            yaml_path: Path to compound YAML file (defaults to databases/compounds.yaml)
        """
        self.yaml_path = yaml_path or self._default_yaml_path()
        self._compounds: Optional[Dict[str, CompoundRecord]] = None
        self._by_lower_name: Dict[str, CompoundRecord] = {}
        self._by_name_key: Dict[str, CompoundRecord] = {}
        self._by_formula_key: Dict[str, CompoundRecord] = {}
        self._by_synonym_key: Dict[str, CompoundRecord] = {}

    def _default_yaml_path(self) -> str:
        """Get default YAML path relative to this module"""
        base_dir = Path(__file__).parent.parent
        return str(base_dir / "databases" / "compounds.yaml")

    def _load_yaml(self) -> Dict[str, CompoundRecord]:
        """Lazy load YAML data on first access"""
        if self._compounds is not None:
            return self._compounds

        yaml_file = Path(self.yaml_path)
        if not yaml_file.exists():
            raise FileNotFoundError(f"Compound database not found: {self.yaml_path}")

        with open(yaml_file, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        self._compounds = {}
        for entry in data.get("compounds", []):
            try:
                record = self._record_from_entry(entry)
            except (KeyError, ValueError) as e:
                raise ValueError(f"Invalid compound entry {entry!r} in {self.yaml_path}: {e}") from e
            self._register(record)

        logger.info(f"Loaded {len(self._compounds)} compounds from {self.yaml_path}")
        return self._compounds

    @staticmethod
    def _record_from_entry(entry: Dict) -> CompoundRecord:
        return CompoundRecord(
            name=str(entry["name"]),
            formula=str(entry.get("formula", entry["name"])),
            phase=CompoundPhase(entry["phase"]),
            molar_volume_cm3_mol=entry.get("molar_volume_cm3_mol"),
            density_g_cm3=entry.get("density_g_cm3"),
            molecular_weight_g_mol=entry.get("molecular_weight_g_mol"),
            synonyms=[str(s) for s in entry.get("synonyms", [])],
            phreeqc_phase=entry.get("phreeqc_phase"),
            dissolution_products={
                str(k): float(v) for k, v in (entry.get("dissolution_products") or {}).items()
            },
            log_k_25C=entry.get("log_k_25C"),
            delta_h_kJ_mol=float(entry.get("delta_h_kJ_mol", 0.0)),
            rate_constant_mol_m2_s=entry.get("rate_constant_mol_m2_s"),
            activation_energy_kJ_mol=float(entry.get("activation_energy_kJ_mol", 0.0)),
            specific_surface_area_m2_mol=float(entry.get("specific_surface_area_m2_mol", 0.0)),
        )

    def _indexes(self) -> List[Dict[str, CompoundRecord]]:
        return [self._by_lower_name, self._by_name_key, self._by_formula_key, self._by_synonym_key]

    def _register(self, record: CompoundRecord, replace: bool = False) -> None:
        """
        Add a record to the name table and lookup indexes.

        Loading keeps the first record for a shared lookup key; ``replace``
        drops the previous record of the same name and lets the new one take
        every key it produces.
        """
        previous = self._compounds.get(record.name)
        if replace and previous is not None:
            for index in self._indexes():
                for key in [k for k, v in index.items() if v is previous]:
                    del index[key]
        self._compounds[record.name] = record

        entries = [(self._by_lower_name, record.name.lower())]
        entries += [(self._by_name_key, key) for key in candidate_keys(record.name)]
        entries += [(self._by_formula_key, key) for key in candidate_keys(record.formula)]
        for synonym in record.synonyms:
            entries += [(self._by_synonym_key, key) for key in candidate_keys(synonym)]
        for index, key in entries:
            if replace:
                index[key] = record
            else:
                index.setdefault(key, record)

    # ------------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------------

    @property
    def compounds(self) -> Dict[str, CompoundRecord]:
        return self._load_yaml()

    def add_compound(self, record: CompoundRecord) -> None:
        """Register an additional compound (replaces an existing one of the same name)"""
        compounds = self._load_yaml()
        self._register(record, replace=record.name in compounds)

    def find(self, name: str) -> Optional[CompoundRecord]:
        """Exact-name lookup"""
        return self.compounds.get(name)

    def find_flexible(self, name: str) -> Optional[CompoundRecord]:
        """
        Resolve a compound by name, formula or synonym.

        Args:
            name: User-supplied identifier (e.g., "Ca2+", "calcite", "SO₄²⁻", "Na")

        Returns:
            Matching CompoundRecord, or None if nothing matches
        """
        if not name or not name.strip():
            return None

        compounds = self.compounds
        if name in compounds:
            return compounds[name]

        record = self._by_lower_name.get(name.strip().lower())
        if record is not None:
            return record

        keys = candidate_keys(name)
        for index in (self._by_name_key, self._by_formula_key, self._by_synonym_key):
            for key in keys:
                record = index.get(key)
                if record is not None:
                    logger.debug(f"Resolved compound '{name}' -> '{record.name}'")
                    return record
        return None

    def minerals(self) -> List[CompoundRecord]:
        """All solid compounds, in database order"""
        return [c for c in self.compounds.values() if c.is_solid]

    def parse_formula(self, formula: str) -> Dict[str, float]:
        """
        Element counts for a formula or a known compound name.

        Known compounds are parsed from their database formula, so
        ``parse_formula("Calcite")`` and ``parse_formula("Ca2+")`` both work.
        """
        record = self.find_flexible(formula)
        if record is not None:
            return parse_chemical_formula(record.formula)
        return parse_chemical_formula(formula)


# Cache for loaded libraries (lazy loading)
_LIBRARY_CACHE: Dict[str, CompoundLibrary] = {}


def get_compound_library(yaml_path: Optional[str] = None) -> CompoundLibrary:
    """Shared library instance per YAML path"""
    library = CompoundLibrary(yaml_path)
    cached = _LIBRARY_CACHE.get(library.yaml_path)
    if cached is None:
        _LIBRARY_CACHE[library.yaml_path] = library
        cached = library
    return cached
