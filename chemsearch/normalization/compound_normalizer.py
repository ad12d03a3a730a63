"""
Compound normalization.

Turns one parsed upstream JSON value into exactly one canonical
:class:`~chemsearch.types.Compound`, or raises
:class:`~chemsearch.errors.CompoundFormatError`. No partial records are
produced from shapes that are not recognized.

Post-processing is the same for every shape:
  - ``name`` falls back to "Compound <cid>"
  - ``image_url`` falls back to the PubChem structure image
  - ``chemical_class`` is derived from ``formula`` only when the source
    carried no classification of its own
  - empty strings and nulls are dropped from list fields, and empty
    lists collapse to None
"""

import logging
import re
from typing import Any, Dict, List, Optional, Tuple

from ..errors import CompoundFormatError
from ..types import Compound, default_image_url
from .detector import (
    FORMAT_DIRECT,
    FORMAT_PC_COMPOUNDS,
    FORMAT_RECORD,
    FORMAT_UNKNOWN,
    detect_format,
)

logger = logging.getLogger(__name__)


NUMBER_PATTERN = re.compile(r'^\s*[-+]?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?')

# PC_Compounds prop labels read from the string slot (value.sval)
PC_STRING_LABELS = {
    'IUPAC Name': 'iupac_name',
    'Molecular Formula': 'formula',
    'InChI': 'inchi',
    'InChIKey': 'inchi_key',
    'SMILES': 'smiles',
}
PC_WEIGHT_LABEL = 'Molecular Weight'

# PUG View headings looked up under "Computed Descriptors" first
RECORD_HEADINGS = {
    'IUPAC Name': 'iupac_name',
    'InChI': 'inchi',
    'InChIKey': 'inchi_key',
    'SMILES': 'smiles',
    'Canonical SMILES': 'smiles',
    'Molecular Formula': 'formula',
}

DIRECT_ALIASES = {
    'cid': ('cid', 'CID'),
    'name': ('name', 'Title'),
    'iupac_name': ('iupacName', 'iupac_name', 'IUPACName'),
    'formula': ('formula', 'molecularFormula', 'molecular_formula', 'MolecularFormula'),
    'molecular_weight': ('molecularWeight', 'molecular_weight', 'MolecularWeight'),
    'inchi': ('inchi', 'InChI'),
    'inchi_key': ('inchiKey', 'inchi_key', 'InChIKey'),
    'smiles': (
        'smiles', 'SMILES', 'canonicalSmiles', 'canonical_smiles', 'CanonicalSMILES',
    ),
    'description': ('description',),
    'image_url': ('imageUrl', 'image_url'),
    'synonyms': ('synonyms',),
    'chemical_class': ('chemicalClass', 'chemical_class'),
    'properties': ('properties',),
}

# Keys that never become open-schema properties
IGNORED_DIRECT_KEYS = {'id', 'isProcessed', 'is_processed'}

STRING_FIELDS = (
    'name', 'iupac_name', 'formula', 'inchi', 'inchi_key',
    'smiles', 'description', 'image_url',
)

CLASS_ORGANIC = 'Organic compounds'
CLASS_INORGANIC = 'Inorganic compounds'
HETEROATOM_CLASSES = (
    ('O', 'Oxygen-containing compounds'),
    ('N', 'Nitrogen-containing compounds'),
    ('S', 'Sulfur-containing compounds'),
)


# ============================================================================
# PUBLIC API
# ============================================================================

def normalize_compound(data: Any) -> Compound:
    """
    Normalize one upstream compound record.

    Args:
        data: Parsed JSON value in any supported shape

    Returns:
        Canonical Compound without a surrogate id

    Raises:
        CompoundFormatError: If the shape is unrecognized, the CID is missing,
            or a recognized shape holds values of the wrong type
    """
    fmt = detect_format(data)
    if fmt == FORMAT_UNKNOWN:
        raise CompoundFormatError('unrecognized format', source=_describe(data))

    try:
        if fmt == FORMAT_PC_COMPOUNDS:
            fields, explicit_class = _from_pc_compound(data['PC_Compounds'][0]), False
        elif fmt == FORMAT_RECORD:
            fields, explicit_class = _from_record(data['Record']), False
        else:
            fields, explicit_class = _from_direct(data)
        compound = _finalize(fields, explicit_class)
    except (AttributeError, TypeError, KeyError, IndexError, ValueError) as e:
        raise CompoundFormatError(
            f'malformed record: {e}', cid=_dig(data, 'cid'), source=fmt
        ) from e

    logger.debug(f"Normalized cid={compound.cid} from {fmt} format")
    return compound


def derive_chemical_class(formula: Optional[str]) -> Optional[List[str]]:
    """
    Derive coarse class labels from a molecular formula.

    Substring heuristics only: C and H together mean organic, with O/N/S
    adding heteroatom labels; anything else is inorganic.

    Args:
        formula: Molecular formula, e.g. "C6H12O6"

    Returns:
        List of labels, or None when there is no formula
    """
    if not formula:
        return None

    if 'C' in formula and 'H' in formula:
        return [CLASS_ORGANIC] + [
            label for symbol, label in HETEROATOM_CLASSES if symbol in formula
        ]

    return [CLASS_INORGANIC]


# ============================================================================
# FORMAT EXTRACTORS
# ============================================================================

def _from_pc_compound(record: Any) -> Dict[str, Any]:
    """Extract fields from the first entry of a PC_Compounds list."""
    if not isinstance(record, dict):
        raise CompoundFormatError('malformed PC_Compounds entry', source=FORMAT_PC_COMPOUNDS)

    cid = _coerce_cid(_dig(record, 'id', 'id', 'cid'))
    if cid is None:
        raise CompoundFormatError('missing CID', source=FORMAT_PC_COMPOUNDS)

    fields: Dict[str, Any] = {'cid': cid, 'properties': {}}

    props = record.get('props')
    for prop in props if isinstance(props, list) else []:
        if not isinstance(prop, dict):
            continue
        urn = _as_dict(prop.get('urn'))
        value = _as_dict(prop.get('value'))
        label = urn.get('label')
        if not isinstance(label, str):
            continue

        if label in PC_STRING_LABELS:
            field_name = PC_STRING_LABELS[label]
            text = _clean_str(value.get('sval'))
            if text is None:
                continue
            preferred = label == 'IUPAC Name' and urn.get('name') == 'Preferred'
            if field_name not in fields or preferred:
                fields[field_name] = text

        elif label == PC_WEIGHT_LABEL:
            # Older exports carry fval, current ones a numeric sval
            weight = _parse_number(value.get('fval'))
            if weight is None:
                weight = _parse_number(value.get('sval'))
            if weight is not None:
                fields['molecular_weight'] = weight

        elif label:
            scalar = _first_scalar(value)
            if scalar is not None:
                urn_name = _clean_str(urn.get('name'))
                key = f"{label} ({urn_name})" if urn_name else label
                fields['properties'].setdefault(key, scalar)

    groups = record.get('synonyms')
    if isinstance(groups, list) and groups:
        first = groups[0]
        names = _clean_str_list(first.get('synonym') if isinstance(first, dict) else first)
        if names:
            fields['name'] = names[0]
            fields['synonyms'] = names

    return fields


def _from_record(record: Dict[str, Any]) -> Dict[str, Any]:
    """Extract fields from a PUG View Record tree."""
    cid = _coerce_cid(record.get('RecordNumber'))
    if cid is None:
        raise CompoundFormatError('missing CID', source=FORMAT_RECORD)

    fields: Dict[str, Any] = {'cid': cid, 'name': record.get('RecordTitle')}
    sections = record.get('Section')

    description = _section_value(_find_section(sections, 'Record Description'))
    if description is not None:
        fields['description'] = description

    descriptors = _find_section(sections, 'Computed Descriptors')
    for heading, field_name in RECORD_HEADINGS.items():
        if fields.get(field_name):
            continue
        section = None
        if descriptors is not None:
            section = _find_section(descriptors.get('Section'), heading)
        if section is None:
            section = _find_section(sections, heading)
        text = _clean_str(_section_value(section))
        if text:
            fields[field_name] = text

    weight = _parse_number(_section_value(_find_section(sections, 'Molecular Weight')))
    if weight is not None:
        fields['molecular_weight'] = weight

    return fields


def _from_direct(data: Dict[str, Any]) -> Tuple[Dict[str, Any], bool]:
    """Coerce a flat record; returns fields and whether it had a classification."""
    raw_cid = _pick(data, DIRECT_ALIASES['cid'])
    cid = _coerce_cid(raw_cid)
    if cid is None:
        reason = 'missing CID' if raw_cid in (None, '') else 'invalid CID'
        raise CompoundFormatError(reason, cid=raw_cid, source=FORMAT_DIRECT)

    fields: Dict[str, Any] = {'cid': cid}
    for field_name, aliases in DIRECT_ALIASES.items():
        if field_name == 'cid':
            continue
        value = _pick(data, aliases)
        if value is not None:
            fields[field_name] = value

    if 'molecular_weight' in fields:
        fields['molecular_weight'] = _parse_number(fields['molecular_weight'])

    properties = _clean_properties(fields.get('properties'))
    known = {alias for aliases in DIRECT_ALIASES.values() for alias in aliases}
    for key, value in data.items():
        if key in known or key in IGNORED_DIRECT_KEYS:
            continue
        if _is_scalar(value):
            properties.setdefault(key, value)
    fields['properties'] = properties

    explicit_class = bool(_clean_str_list(fields.get('chemical_class')))
    return fields, explicit_class


# ============================================================================
# POST-PROCESSING
# ============================================================================

def _finalize(fields: Dict[str, Any], explicit_class: bool) -> Compound:
    cid = fields['cid']

    for field_name in STRING_FIELDS:
        fields[field_name] = _clean_str(fields.get(field_name))

    fields['name'] = fields['name'] or f"Compound {cid}"
    fields['image_url'] = fields['image_url'] or default_image_url(cid)
    fields['synonyms'] = _clean_str_list(fields.get('synonyms'))
    fields['properties'] = _clean_properties(fields.get('properties'))

    if explicit_class:
        fields['chemical_class'] = _clean_str_list(fields.get('chemical_class'))
    else:
        fields['chemical_class'] = derive_chemical_class(fields['formula'])

    return Compound(
        cid=cid,
        name=fields['name'],
        iupac_name=fields['iupac_name'],
        formula=fields['formula'],
        molecular_weight=fields.get('molecular_weight'),
        inchi=fields['inchi'],
        inchi_key=fields['inchi_key'],
        smiles=fields['smiles'],
        description=fields['description'],
        image_url=fields['image_url'],
        synonyms=fields['synonyms'],
        chemical_class=fields['chemical_class'],
        properties=fields['properties'],
    )


# ============================================================================
# HELPERS
# ============================================================================

def _dig(data: Any, *keys: str) -> Any:
    for key in keys:
        if not isinstance(data, dict):
            return None
        data = data.get(key)
    return data


def _as_dict(value: Any) -> Dict[str, Any]:
    """``value`` if it is a mapping, else an empty one."""
    return value if isinstance(value, dict) else {}


def _pick(data: Dict[str, Any], aliases: Tuple[str, ...]) -> Any:
    for alias in aliases:
        if data.get(alias) is not None:
            return data[alias]
    return None


def _find_section(sections: Any, heading: str) -> Optional[Dict[str, Any]]:
    """Depth-first search for the first section titled ``heading``."""
    if not isinstance(sections, list):
        return None
    for section in sections:
        if not isinstance(section, dict):
            continue
        if section.get('TOCHeading') == heading:
            return section
        found = _find_section(section.get('Section'), heading)
        if found is not None:
            return found
    return None


def _section_value(section: Optional[Dict[str, Any]]) -> Any:
    """First informational value of a section (string markup or number)."""
    if not section:
        return None
    information = section.get('Information')
    if not isinstance(information, list) or not information:
        return None
    first = information[0]
    if not isinstance(first, dict):
        return None
    value = _as_dict(first.get('Value'))

    markup = value.get('StringWithMarkup')
    if isinstance(markup, list) and markup and isinstance(markup[0], dict):
        return markup[0].get('String')

    numbers = value.get('Number')
    if isinstance(numbers, list) and numbers:
        return numbers[0]

    return None


def _coerce_cid(value: Any) -> Optional[int]:
    """Positive integer CID, or None."""
    if isinstance(value, bool):
        return None
    if isinstance(value, float):
        value = int(value) if value.is_integer() else None
    elif isinstance(value, str):
        value = int(value.strip()) if value.strip().isdigit() else None
    if isinstance(value, int) and value > 0:
        return value
    return None


def _parse_number(value: Any) -> Optional[float]:
    """Parse a float from a number or a numeric-looking string ("180.16 g/mol")."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        match = NUMBER_PATTERN.match(value)
        if match:
            return float(match.group())
    return None


def _clean_str(value: Any) -> Optional[str]:
    if isinstance(value, str):
        return value.strip() or None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return None


def _clean_str_list(value: Any) -> Optional[List[str]]:
    """Non-empty, de-duplicated list of strings, or None."""
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, (list, tuple)):
        return None

    cleaned = []
    for item in value:
        text = _clean_str(item)
        if text and text not in cleaned:
            cleaned.append(text)
    return cleaned or None


def _is_scalar(value: Any) -> bool:
    return isinstance(value, (str, int, float, bool))


def _clean_properties(value: Any) -> Dict[str, Any]:
    if not isinstance(value, dict):
        return {}
    return {str(key): item for key, item in value.items() if _is_scalar(item)}


def _first_scalar(value: Dict[str, Any]) -> Any:
    for slot in ('sval', 'fval', 'ival'):
        if _is_scalar(value.get(slot)):
            return value[slot]
    return None


def _describe(data: Any) -> str:
    if isinstance(data, dict):
        keys = sorted(str(key) for key in data)[:5]
        return f"object with keys {keys}" if keys else "empty object"
    return type(data).__name__
