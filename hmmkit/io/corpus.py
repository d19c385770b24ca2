"""
Observation corpus loading and validation.

A corpus file is JSON, either {"sequences": [...]} or a bare list of
sequences, where each sequence is a non-empty list of [p, q] integer pairs.
"""

import json
from pathlib import Path
from typing import Any, Dict, List, Union

import jsonschema

from ..exceptions import ObservationError
from ..logger import get_logger

logger = get_logger(__name__)


SEQUENCE_SCHEMA = {
    "type": "array",
    "minItems": 1,
    "items": {
        "type": "array",
        "minItems": 2,
        "maxItems": 2,
        "items": {"type": "integer", "minimum": 0}
    }
}

CORPUS_SCHEMA = {
    "oneOf": [
        {
            "type": "object",
            "properties": {
                "sequences": {"type": "array", "minItems": 1, "items": SEQUENCE_SCHEMA},
                "description": {"type": "string"}
            },
            "required": ["sequences"],
            "additionalProperties": True
        },
        {"type": "array", "minItems": 1, "items": SEQUENCE_SCHEMA}
    ]
}


def validate_corpus(document: Any) -> List[List[List[int]]]:
    """
    Validate a decoded corpus document and return its sequences.

    Raises:
        ObservationError: If the document does not match the corpus schema
    """
    try:
        jsonschema.validate(document, CORPUS_SCHEMA)
    except jsonschema.ValidationError as e:
        raise ObservationError(f"Corpus validation failed: {e.message}")

    if isinstance(document, dict):
        return document["sequences"]
    return document


def load_corpus(path: Union[str, Path]) -> List[List[List[int]]]:
    """
    Load and validate an observation corpus from a JSON file.

    Args:
        path: Path to JSON corpus file

    Returns:
        List of sequences of [p, q] pairs

    Raises:
        ObservationError: If the file cannot be loaded or validation fails
    """
    path = Path(path)
    if not path.exists():
        raise ObservationError(f"Corpus file not found: {path}")

    logger.debug(f"Loading corpus from: {path}")

    try:
        with open(path, 'r', encoding='utf-8') as f:
            document = json.load(f)
    except json.JSONDecodeError as e:
        raise ObservationError(f"Invalid JSON in corpus file {path}: {e}")
    except OSError as e:
        raise ObservationError(f"Failed to read corpus file {path}: {e}")

    try:
        sequences = validate_corpus(document)
    except ObservationError as e:
        raise ObservationError(f"{path}: {e}")

    logger.debug(f"Loaded {len(sequences)} sequences from {path}")
    return sequences


def save_corpus(sequences: List[List[List[int]]], path: Union[str, Path], description: str = "") -> None:
    """Write sequences as a corpus file."""
    document: Dict[str, Any] = {"sequences": [[[int(p), int(q)] for p, q in seq] for seq in sequences]}
    if description:
        document["description"] = description

    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, 'w', encoding='utf-8') as f:
        json.dump(document, f, indent=2)
