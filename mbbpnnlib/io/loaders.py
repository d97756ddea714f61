"""
Readers for the static model files: G-function definitions, descriptor scaling bounds and network
weights. All readers raise ModelLoadError on a missing or malformed file.
"""

import re
from os import path
import numpy as np
import torch
from mbbpnnlib.io.error import ModelLoadError
from mbbpnnlib.lib.neural_networks.descriptors.gfunction import SymmetryFunction


def _data_lines(filename):
    """Yield (line number, tokens) for every non-empty line, with # comments stripped."""
    if filename is None or not path.isfile(filename):
        raise ModelLoadError(f"Model file {filename} not found")
    with open(filename, 'r') as fp:
        for number, line in enumerate(fp, start=1):
            tokens = line.split('#')[0].split()
            if tokens:
                yield number, tokens


def read_descriptor_params(filename):
    """
    Read G-function definitions.

    Every line is either `CENTRE rad NEIGHBOUR rc eta rs` or
    `CENTRE ang NEIGHBOUR1 NEIGHBOUR2 rc eta zeta lambda`. The order of the lines of a centre type
    is the order of its descriptor dimensions.

    Args:
        filename (str): Path to the parameter file.

    Returns:
        dict: Centre type label -> list of :obj:`SymmetryFunction`.
    """
    params = {}
    for number, tokens in _data_lines(filename):
        centre = tokens[0].capitalize()
        kind = tokens[1].lower() if len(tokens) > 1 else None
        try:
            if kind == "rad":
                if len(tokens) != 6:
                    raise ValueError("radial lines need 6 fields")
                rc, eta, rs = [float(v) for v in tokens[3:6]]
                function = SymmetryFunction("rad", (tokens[2].capitalize(),), rc, eta, rs=rs)
            elif kind == "ang":
                if len(tokens) != 8:
                    raise ValueError("angular lines need 8 fields")
                rc, eta, zeta, lam = [float(v) for v in tokens[4:8]]
                function = SymmetryFunction("ang", (tokens[2].capitalize(), tokens[3].capitalize()),
                                            rc, eta, zeta=zeta, lam=lam)
            else:
                raise ValueError(f"unknown function kind {kind}, expected rad or ang")
        except ValueError as e:
            raise ModelLoadError(f"{filename}:{number}: {e}") from e
        params.setdefault(centre, []).append(function)

    if not params:
        raise ModelLoadError(f"{filename} does not define any G-function")
    return params


def read_scale_file(filename, descriptor_counts):
    """
    Read min/max descriptor bounds.

    Lines are `TYPE min v1 v2 ...` and `TYPE max v1 v2 ...`.

    Args:
        filename (str): Path to the scale file.
        descriptor_counts (dict): Type label -> number of descriptors, used to check lengths.

    Returns:
        dict: Type label -> (min, max) tuple of numpy arrays.
    """
    bounds = {}
    for number, tokens in _data_lines(filename):
        label = tokens[0].capitalize()
        which = tokens[1].lower() if len(tokens) > 1 else None
        if which not in ("min", "max"):
            raise ModelLoadError(f"{filename}:{number}: expected min or max, got {which}")
        try:
            values = np.array([float(v) for v in tokens[2:]])
        except ValueError as e:
            raise ModelLoadError(f"{filename}:{number}: {e}") from e
        bounds.setdefault(label, {})[which] = values

    scale = {}
    for label, count in descriptor_counts.items():
        if label not in bounds or len(bounds[label]) != 2:
            raise ModelLoadError(f"{filename} needs both min and max rows for type {label}")
        gmin, gmax = bounds[label]["min"], bounds[label]["max"]
        if gmin.size != count or gmax.size != count:
            raise ModelLoadError(f"{filename}: type {label} has {gmin.size}/{gmax.size} bounds "
                                 f"but {count} descriptors")
        if np.any(gmax < gmin):
            raise ModelLoadError(f"{filename}: type {label} has max < min")
        scale[label] = (gmin, gmax)
    return scale


_npz_key = re.compile(r"^(?P<label>[A-Za-z]+)_(?P<kind>[wb])(?P<layer>\d+)$")
_pt_key = re.compile(r"^network_architecture(?P<index>\d+)\.(?P<module>\d+)\.(?P<kind>weight|bias)$")


def _collect_layers(layers, filename):
    """Turn {label: {layer: {kind: array}}} into {label: [(W, b), ...]}."""
    params = {}
    for label, by_layer in layers.items():
        indices = sorted(by_layer)
        if indices != list(range(len(indices))):
            raise ModelLoadError(f"{filename}: layers of type {label} are not numbered 0..{len(indices)-1}")
        params[label] = []
        for k in indices:
            if set(by_layer[k]) != {"w", "b"}:
                raise ModelLoadError(f"{filename}: layer {k} of type {label} needs a weight and a bias")
            params[label].append((by_layer[k]["w"], by_layer[k]["b"]))
    return params


def read_network_params(filename):
    """
    Read per-type network weights and biases.

    Two layouts are understood: a numpy `.npz` archive with arrays `{TYPE}_w{k}` of shape
    (n_out, n_in) and `{TYPE}_b{k}` of shape (n_out,), or a torch file written by
    :meth:`AtomicNetworks.save`.

    Args:
        filename (str): Path to the network parameter file.

    Returns:
        dict: Type label -> list of (weight, bias) numpy arrays, input layer first.
    """
    if filename is None or not path.isfile(filename):
        raise ModelLoadError(f"Network parameter file {filename} not found")

    layers = {}
    try:
        if filename.endswith(".pt"):
            saved = torch.load(filename, map_location="cpu")
            type_names = saved["type_names"]
            for key, value in saved["state_dict"].items():
                match = _pt_key.match(key)
                if match is None:
                    raise ModelLoadError(f"{filename}: unexpected key {key}")
                label = type_names[int(match.group("index"))]
                layers.setdefault(label, {}).setdefault(int(match.group("module")), {})
                layers[label][int(match.group("module"))]["w" if match.group("kind") == "weight" else "b"] = \
                    value.detach().cpu().numpy()
            # Sequential module indices count activations too, renumber linear layers from 0.
            layers = {label: {k: by_module[m] for k, m in enumerate(sorted(by_module))}
                      for label, by_module in layers.items()}
        else:
            with np.load(filename) as archive:
                for key in archive.files:
                    match = _npz_key.match(key)
                    if match is None:
                        raise ModelLoadError(f"{filename}: unexpected array {key}")
                    label = match.group("label").capitalize()
                    layers.setdefault(label, {}).setdefault(int(match.group("layer")), {})
                    layers[label][int(match.group("layer"))][match.group("kind")] = archive[key]
    except ModelLoadError:
        raise
    except (OSError, ValueError, KeyError, IndexError, RuntimeError) as e:
        raise ModelLoadError(f"Could not read network parameters from {filename}: {e}") from e

    if not layers:
        raise ModelLoadError(f"{filename} does not hold any network")
    return _collect_layers(layers, filename)


def write_network_params(filename, params):
    """
    Write per-type weights and biases in the `.npz` layout read by :func:`read_network_params`.

    Args:
        filename (str): Output path.
        params (dict): Type label -> list of (weight, bias) arrays.
    """
    arrays = {}
    for label, layers in params.items():
        for k, (weight, bias) in enumerate(layers):
            arrays[f"{label}_w{k}"] = np.asarray(weight)
            arrays[f"{label}_b{k}"] = np.asarray(bias)
    np.savez(filename, **arrays)
