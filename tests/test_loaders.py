import pytest
import numpy as np
from mbbpnnlib.io.error import ModelLoadError
from mbbpnnlib.io.loaders import (read_descriptor_params, read_scale_file, read_network_params,
                                  write_network_params)


def test_descriptor_params_order_and_comments(model_files):
    params = read_descriptor_params(model_files["paramfile"])
    assert list(params) == ["O", "H"]
    assert [f.kind for f in params["O"]] == ["rad", "rad", "rad", "ang", "ang", "ang"]
    assert params["O"][2].neighbors == ("O",)
    assert params["H"][3].neighbors == ("O", "H")
    assert params["O"][4].zeta == 2.0
    assert params["O"][4].lam == -1.0


@pytest.mark.parametrize("line", ["O rad H 6.0 0.5",
                                  "O dih H H 6.0 0.5 1.0 1",
                                  "O ang H H 6.0 0.5 0.5 1",
                                  "O rad H six 0.5 0.9"])
def test_malformed_descriptor_line(tmp_path, line):
    paramfile = tmp_path / "bad.params"
    paramfile.write_text(line + "\n")
    with pytest.raises(ModelLoadError):
        read_descriptor_params(str(paramfile))


def test_missing_files(tmp_path):
    with pytest.raises(ModelLoadError):
        read_descriptor_params(str(tmp_path / "absent.params"))
    with pytest.raises(ModelLoadError):
        read_network_params(str(tmp_path / "absent.npz"))


def test_scale_length_mismatch(model_files):
    with pytest.raises(ModelLoadError):
        read_scale_file(model_files["scalefile"], {"O": 5, "H": 5})
    scale = read_scale_file(model_files["scalefile"], {"O": 6, "H": 5})
    np.testing.assert_allclose(scale["O"][1], [2.0, 3.0, 1.0, 1.5, 0.5, 0.8])


def test_network_params(model_files):
    params = read_network_params(model_files["netfile"])
    assert [w.shape for w, _ in params["O"]] == [(8, 6), (8, 8), (1, 8)]
    assert [b.shape for _, b in params["H"]] == [(8,), (1,)]


def test_network_params_missing_layer(tmp_path):
    netfile = str(tmp_path / "nn.npz")
    np.savez(netfile, O_w0=np.ones((4, 6)), O_b0=np.ones(4), O_w2=np.ones((1, 4)), O_b2=np.ones(1))
    with pytest.raises(ModelLoadError):
        read_network_params(netfile)


def test_write_read(tmp_path):
    netfile = str(tmp_path / "nn.npz")
    params = {"O": [(np.arange(6.0).reshape(2, 3), np.zeros(2)), (np.ones((1, 2)), np.ones(1))]}
    write_network_params(netfile, params)
    read = read_network_params(netfile)
    np.testing.assert_array_equal(read["O"][0][0], params["O"][0][0])
