import pytest
import numpy as np
from mbbpnnlib.io.loaders import write_network_params


O_PARAMS = """# centre kind neighbours      rc   eta   rs|zeta  lambda
O  rad  H                     7.0  0.5   0.9
O  rad  H                     7.0  0.2   2.5
O  rad  O                     7.0  0.1   3.0
O  ang  H  H                  7.0  0.01  1.0      1
O  ang  H  H                  7.0  0.02  2.0     -1
O  ang  O  H                  7.0  0.01  1.0      1
"""

H_PARAMS = """H  rad  O                     7.0  0.5   1.0
H  rad  O                     7.0  0.1   3.0
H  rad  H                     7.0  0.3   1.5
H  ang  O  H                  7.0  0.01  1.0      1   # mixed pair
H  ang  O  O                  7.0  0.02  2.0     -1
"""

SCALE = """O min 0.0 0.0 0.0 0.0 0.0 0.0
O max 2.0 3.0 1.0 1.5 0.5 0.8
H min 0.0 0.0 0.0 0.0 0.1
H max 1.5 1.0 2.0 0.5 0.1
"""

WATER = np.array([[0.0, 0.0, 0.0],
                  [0.9572, 0.0, 0.0],
                  [-0.2400, 0.9266, 0.0]])


def random_rotation(rng):
    q, r = np.linalg.qr(rng.normal(size=(3, 3)))
    q = q @ np.diag(np.sign(np.diag(r)))
    if np.linalg.det(q) < 0:
        q[:, 0] = -q[:, 0]
    return q


def random_network(rng, sizes):
    return [(0.5*rng.normal(size=(sizes[k+1], sizes[k])), 0.1*rng.normal(size=sizes[k+1]))
            for k in range(len(sizes) - 1)]


def make_cluster(rng, centres):
    """Randomly oriented water molecules with oxygens at `centres`, shape (nmol*3, 3)."""
    return np.concatenate([WATER @ random_rotation(rng).T + np.asarray(c) for c in centres])


def make_batch(rng, nmolecules, ncluster, spacing=3.0, jitter=0.3):
    """Flat coordinates of `ncluster` clusters, cluster then atom then x/y/z."""
    if nmolecules == 2:
        base = [[0.0, 0.0, 0.0], [spacing, 0.0, 0.0]]
    else:
        base = [[0.0, 0.0, 0.0], [spacing, 0.0, 0.0], [0.5*spacing, 0.85*spacing, 0.0]]
    clusters = [make_cluster(rng, np.asarray(base) + jitter*rng.normal(size=(nmolecules, 3)))
                for _ in range(ncluster)]
    return np.concatenate([c.ravel() for c in clusters])


@pytest.fixture
def model_files(tmp_path):
    """Synthetic descriptor, scale and network files with seeded random weights."""
    rng = np.random.default_rng(20240101)
    paramfile = tmp_path / "gfn.params"
    paramfile.write_text(O_PARAMS + H_PARAMS)
    scalefile = tmp_path / "gfn.scale"
    scalefile.write_text(SCALE)
    netfile = tmp_path / "nn.npz"
    write_network_params(str(netfile), {"O": random_network(rng, [6, 8, 8, 1]),
                                        "H": random_network(rng, [5, 8, 1])})
    return {"paramfile": str(paramfile), "scalefile": str(scalefile), "netfile": str(netfile)}


@pytest.fixture
def make_input(model_files):
    """Build a dictionary input for the synthetic model."""
    def _make_input(topology="2h2o_default", **sections):
        settings = {"MODEL": {"topology": topology},
                    "DESCRIPTOR": {"paramfile": model_files["paramfile"],
                                   "scalefile": model_files["scalefile"]},
                    "NETWORK": {"paramfile": model_files["netfile"],
                                "dtype_setting": 2},
                    "SWITCH": {"form": "cosine"}}
        for name, values in sections.items():
            settings.setdefault(name, {}).update(values)
        return settings
    return _make_input


@pytest.fixture
def rng():
    return np.random.default_rng(7)
