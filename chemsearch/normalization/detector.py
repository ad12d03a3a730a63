"""
Compound record format detection.

Upstream compound JSON arrives in one of three shapes:

  - **pc_compounds**: PubChem PUG REST full records, a top-level
    ``PC_Compounds`` list whose entries carry ``id.id.cid``, typed
    ``props`` and nested ``synonyms`` groups.
  - **record**: PubChem PUG View reports, a top-level ``Record`` with a
    ``RecordNumber`` and a tree of ``Section`` entries titled by
    ``TOCHeading``.
  - **direct**: records already in (roughly) canonical form, exposing
    ``cid``/``name`` at the top level in camelCase or snake_case.

Detection is ordered; the first matching shape wins.
"""

from typing import Any


FORMAT_PC_COMPOUNDS = 'pc_compounds'
FORMAT_RECORD = 'record'
FORMAT_DIRECT = 'direct'
FORMAT_UNKNOWN = 'unknown'

DIRECT_KEYS = ('cid', 'CID', 'name')


def detect_format(data: Any) -> str:
    """
    Detect which upstream shape a parsed JSON value uses.

    Args:
        data: Parsed JSON value (not raw text).

    Returns:
        One of 'pc_compounds', 'record', 'direct', or 'unknown'.
    """
    if not isinstance(data, dict):
        return FORMAT_UNKNOWN

    records = data.get('PC_Compounds')
    if isinstance(records, list) and records:
        return FORMAT_PC_COMPOUNDS

    if isinstance(data.get('Record'), dict):
        return FORMAT_RECORD

    if any(data.get(key) not in (None, '') for key in DIRECT_KEYS):
        return FORMAT_DIRECT

    return FORMAT_UNKNOWN
