import pytest
import numpy as np
import torch
from mbbpnnlib.atom_types import get_topology
from mbbpnnlib.io.error import ConfigurationError, ModelLoadError, PreconditionViolation
from mbbpnnlib.io.loaders import read_descriptor_params, read_scale_file
from mbbpnnlib.lib.neural_networks.descriptors.gfunction import GFunction, SymmetryFunction
from conftest import make_batch, random_rotation


def cutoff(r, rc):
    return np.where(r < rc, 0.5*(np.cos(np.pi*r/rc) + 1.0), 0.0)


@pytest.fixture
def engine(model_files):
    topology = get_topology("2h2o_default")
    return GFunction(topology, read_descriptor_params(model_files["paramfile"]))


def test_feature_counts(engine):
    assert engine.G_param_max_size == [6, 5]
    descriptors = engine.compute(make_batch(np.random.default_rng(1), 2, 4), engine.topology.types, 4)
    assert [tuple(d.shape) for d in descriptors] == [(6, 4), (5, 4), (5, 4)]*2


def test_radial_and_angular_values(engine, rng):
    xyz = make_batch(rng, 2, 1).reshape(6, 3)
    descriptors = engine.compute(xyz, engine.topology.types, 1)
    r = np.linalg.norm(xyz[:, None] - xyz[None], axis=2)
    hydrogens = [1, 2, 4, 5]

    radial = np.sum(np.exp(-0.5*(r[0, hydrogens] - 0.9)**2)*cutoff(r[0, hydrogens], 7.0))
    assert descriptors[0][0, 0].item() == pytest.approx(radial, rel=1e-12)

    angular = 0.0
    for a, j in enumerate(hydrogens):
        for k in hydrogens[a+1:]:
            cos = (r[0, j]**2 + r[0, k]**2 - r[j, k]**2)/(2*r[0, j]*r[0, k])
            angular += (1.0 + cos)*np.exp(-0.01*(r[0, j]**2 + r[0, k]**2 + r[j, k]**2)) \
                * cutoff(r[0, j], 7.0)*cutoff(r[0, k], 7.0)*cutoff(r[j, k], 7.0)
    assert descriptors[0][3, 0].item() == pytest.approx(angular, rel=1e-12)


def test_cutoff_function(engine):
    r = torch.tensor([0.0, 3.5, 7.0, 9.0], dtype=torch.float64)
    assert engine.cutoff_function(r, 7.0).tolist() == pytest.approx([1.0, 0.5, 0.0, 0.0])


def test_translation_rotation_invariance(engine, rng):
    xyz = make_batch(rng, 2, 3).reshape(3, 6, 3)
    moved = xyz @ random_rotation(rng).T + np.array([1.5, -2.0, 0.7])
    reference = engine.compute(xyz, engine.topology.types, 3)
    transformed = engine.compute(moved, engine.topology.types, 3)
    for a, b in zip(reference, transformed):
        np.testing.assert_allclose(a.numpy(), b.numpy(), rtol=1e-10, atol=1e-12)


def test_hydrogen_swap_permutes_descriptors(engine, rng):
    xyz = make_batch(rng, 2, 2).reshape(2, 6, 3)
    swapped = xyz[:, [0, 2, 1, 3, 4, 5]]
    reference = engine.compute(xyz, engine.topology.types, 2)
    permuted = engine.compute(swapped, engine.topology.types, 2)
    np.testing.assert_allclose(reference[0].numpy(), permuted[0].numpy(), rtol=1e-12)
    np.testing.assert_allclose(reference[1].numpy(), permuted[2].numpy(), rtol=1e-12)
    np.testing.assert_allclose(reference[4].numpy(), permuted[4].numpy(), rtol=1e-12)


def test_scaling(model_files, rng):
    topology = get_topology("2h2o_default")
    params = read_descriptor_params(model_files["paramfile"])
    scale = read_scale_file(model_files["scalefile"], {"O": 6, "H": 5})
    raw = GFunction(topology, params)
    scaled = GFunction(topology, params, scale)
    xyz = make_batch(rng, 2, 2)
    g = raw.compute(xyz, topology.types, 2)
    gs = scaled.compute(xyz, topology.types, 2)
    np.testing.assert_allclose(gs[0][1].numpy(), g[0][1].numpy()/3.0, rtol=1e-12)
    # min == max: the dimension is only shifted
    np.testing.assert_allclose(gs[1][4].numpy(), g[1][4].numpy() - 0.1, rtol=1e-12)


def test_contract_matches_finite_difference(engine, rng):
    h = 1e-4
    xyz = make_batch(rng, 2, 2)
    descriptors = engine.compute(xyz, engine.topology.types, 2, create_graph=True)
    weights = [torch.as_tensor(rng.normal(size=tuple(d.shape))) for d in descriptors]
    analytic = engine.contract(descriptors, weights).numpy()
    assert analytic.shape == (18, 2)

    def weighted_sum(coords):
        g = engine.compute(coords, engine.topology.types, 2)
        return np.array([sum((w[:, c]*d[:, c]).sum().item() for w, d in zip(weights, g)) for c in range(2)])

    per_cluster = xyz.reshape(2, 18)
    for i in range(18):
        plus = per_cluster.copy()
        minus = per_cluster.copy()
        plus[:, i] += h
        minus[:, i] -= h
        fd = (weighted_sum(plus.ravel()) - weighted_sum(minus.ravel()))/(2*h)
        np.testing.assert_allclose(analytic[i], fd, rtol=1e-3, atol=1e-6)


def test_contract_needs_graph(engine, rng):
    descriptors = engine.compute(make_batch(rng, 2, 1), engine.topology.types, 1)
    with pytest.raises(PreconditionViolation):
        engine.contract(descriptors, [torch.ones_like(d) for d in descriptors])


def test_bad_inputs(engine, rng):
    xyz = make_batch(rng, 2, 2)
    with pytest.raises(ConfigurationError):
        engine.compute(xyz[:-1], engine.topology.types, 2)
    with pytest.raises(ConfigurationError):
        engine.compute(xyz, engine.topology.types, 3)
    with pytest.raises(ConfigurationError):
        engine.compute(xyz, [1, 0, 0, 1, 0, 0], 2)


def test_missing_type_functions():
    topology = get_topology("2h2o_default")
    with pytest.raises(ModelLoadError):
        GFunction(topology, {"O": [SymmetryFunction("rad", ("H",), 6.0, 0.5)]})


def test_symmetry_function_validation():
    with pytest.raises(ValueError):
        SymmetryFunction("ang", ("H", "H"), 6.0, 0.1, zeta=0.5)
    with pytest.raises(ValueError):
        SymmetryFunction("ang", ("H", "H"), 6.0, 0.1, lam=0.5)
    with pytest.raises(ValueError):
        SymmetryFunction("rad", ("H", "H"), 6.0, 0.1)
