import pytest
import numpy as np
import torch
from mbbpnnlib.atom_types import get_topology
from mbbpnnlib.lib.switching import SwitchingFunction
from conftest import make_cluster


@pytest.mark.parametrize("form", ["cosine", "cubic"])
def test_switch_boundaries(form):
    switch = SwitchingFunction(get_topology("2h2o_default"), form)
    r = torch.tensor([1.0, 5.5, 6.0, 6.5, 8.0], dtype=torch.float64)
    s, ds = switch.switch(r)
    assert s.tolist() == pytest.approx([1.0, 1.0, 0.5, 0.0, 0.0])
    assert ds[[0, 1, 3, 4]].tolist() == [0.0, 0.0, 0.0, 0.0]
    assert ds[2].item() < 0.0


def test_switch_derivative(rng):
    h = 1e-6
    switch = SwitchingFunction(get_topology("2h2o_default"), "cubic")
    r = torch.tensor([5.6, 5.9, 6.3], dtype=torch.float64)
    _, ds = switch.switch(r)
    fd = (switch.switch(r + h)[0] - switch.switch(r - h)[0])/(2*h)
    np.testing.assert_allclose(ds.numpy(), fd.numpy(), rtol=1e-6)


def test_dimer_factor(rng):
    switch = SwitchingFunction(get_topology("2h2o_default"))
    near = make_cluster(rng, [[0, 0, 0], [3.0, 0, 0]])
    middle = make_cluster(rng, [[0, 0, 0], [0, 6.0, 0]])
    far = make_cluster(rng, [[0, 0, 0], [0, 0, 9.0]])
    xyz = torch.as_tensor(np.stack([near, middle, far]))
    assert switch.compute_switch(xyz).tolist() == pytest.approx([1.0, 0.5, 0.0])
    derivative = switch.derivative(xyz)
    assert derivative.shape == (18, 3)
    assert torch.all(derivative[:, [0, 2]] == 0.0)


def test_trimer_factor(rng):
    switch = SwitchingFunction(get_topology("3h2o_default"))
    contact = make_cluster(rng, [[0, 0, 0], [0, 0, 0.0001], [0, 0.0001, 0]])
    # third molecule beyond the cutoff of both others
    separated = make_cluster(rng, [[0, 0, 0], [2.0, 0, 0], [20.0, 0, 0]])
    xyz = torch.as_tensor(np.stack([contact, separated]))
    assert switch.compute_switch(xyz).tolist() == pytest.approx([3.0, 0.0])


@pytest.mark.parametrize("topology, centres", [
    ("2h2o_default", [[0, 0, 0], [5.8, 0.4, -0.3]]),
    ("3h2o_default", [[0, 0, 0], [3.1, 0, 0], [1.4, 2.9, 0.5]]),
])
def test_switch_gradient_matches_finite_difference(rng, topology, centres):
    h = 1e-5
    switch = SwitchingFunction(get_topology(topology))
    xyz = make_cluster(rng, centres)
    analytic = switch.derivative(torch.as_tensor(xyz[None])).numpy()[:, 0]
    flat = xyz.ravel()
    for i in range(flat.size):
        plus = flat.copy()
        minus = flat.copy()
        plus[i] += h
        minus[i] -= h
        fd = (switch.compute_switch(torch.as_tensor(plus.reshape(1, -1, 3)))
              - switch.compute_switch(torch.as_tensor(minus.reshape(1, -1, 3))))/(2*h)
        assert analytic[i] == pytest.approx(fd.item(), rel=1e-5, abs=1e-8)


def test_product_rule_term(rng):
    switch = SwitchingFunction(get_topology("2h2o_default"))
    xyz = torch.as_tensor(np.stack([make_cluster(rng, [[0, 0, 0], [6.1, 0, 0]])]*2))
    dfdxyz = torch.ones(18, 2, dtype=torch.float64)
    energies = torch.tensor([2.0, -1.0], dtype=torch.float64)
    out = switch.get_dfdx_from_switch(dfdxyz, xyz, energies)
    assert out is dfdxyz
    expected = 1.0 + switch.derivative(xyz)*energies[None, :]
    assert torch.allclose(out, expected)
