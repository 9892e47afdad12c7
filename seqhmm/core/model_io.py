"""
seqhmm model I/O module

Loading and saving probability models:
- .json: Human-readable, fully portable (the only format written)
- .npz: Numpy archive (supported for loading)

If a save path does not end in .json it is redirected to one, with a warning.
"""

import json
import os
import warnings
from typing import Any, Dict, Optional, Tuple

import numpy as np

from seqhmm.core.errors import ConfigurationError
from seqhmm.core.probabilities import ProbabilityModel
from seqhmm.core.sequence import Alphabet

MODEL_TYPE = 'seqhmm'
FORMAT_VERSION = '1.0'


# =============================================================================
# Loading
# =============================================================================

def load_model(filepath: str) -> ProbabilityModel:
    """
    Load a model from file (format chosen by extension).

    Args:
        filepath: Path to a .json or .npz model file

    Returns:
        ProbabilityModel
    """
    model, _ = load_model_with_metadata(filepath)
    return model


def load_model_with_metadata(filepath: str) -> Tuple[ProbabilityModel, Dict[str, Any]]:
    """
    Load a model and whatever run metadata was saved alongside it.

    Returns:
        (model, metadata)
    """
    if not os.path.exists(filepath):
        raise ConfigurationError(f"Model file not found: {filepath}")
    if filepath.endswith('.npz'):
        return _load_npz(filepath), {}
    if filepath.endswith('.json'):
        return _load_json(filepath)
    raise ConfigurationError(
        f"Unrecognized model file '{filepath}': expected a .json or .npz file"
    )


def _load_json(filepath: str) -> Tuple[ProbabilityModel, Dict[str, Any]]:
    with open(filepath, 'r') as f:
        data = json.load(f)

    model_type = data.get('model_type')
    if model_type != MODEL_TYPE:
        raise ConfigurationError(
            f"'{filepath}' holds a {model_type!r} model, expected {MODEL_TYPE!r}"
        )
    return ProbabilityModel.from_dict(data), data.get('metadata', {})


def _load_npz(filepath: str) -> ProbabilityModel:
    data = np.load(filepath, allow_pickle=False)

    if 'alphabet' in data.files:
        alphabet = Alphabet([str(s) for s in data['alphabet']])
    else:
        alphabet = Alphabet.dna(int(data['k']) if 'k' in data.files else 1)

    model = ProbabilityModel(data['initiation'], data['transition'], data['emission'],
                             alphabet=alphabet)
    if 'n_states' in data.files and int(data['n_states']) != model.n_states:
        raise ConfigurationError(
            f"n_states={int(data['n_states'])} in '{filepath}' does not match its tables"
        )
    return model


# =============================================================================
# Saving (JSON only)
# =============================================================================

def save_model(model: ProbabilityModel, filepath: str,
               metadata: Optional[Dict[str, Any]] = None) -> str:
    """
    Save model to file in JSON format.

    If the filepath does not end in .json, the extension is replaced with
    .json and a warning is issued.

    Args:
        model: ProbabilityModel
        filepath: Output path (.json recommended)
        metadata: Extra JSON-serializable run information (method, iterations, ...)

    Returns:
        The path actually written
    """
    if not filepath.endswith('.json'):
        old_path = filepath
        base, _ = os.path.splitext(filepath)
        filepath = base + '.json'
        warnings.warn(
            f"Only JSON format is supported for saving. "
            f"Saving to '{filepath}' instead of '{old_path}'."
        )

    data = model.to_dict()
    data['model_type'] = MODEL_TYPE
    data['version'] = FORMAT_VERSION
    if metadata:
        data['metadata'] = metadata

    with open(filepath, 'w') as f:
        json.dump(data, f, indent=2)
    return filepath
