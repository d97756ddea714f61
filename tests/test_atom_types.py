import pytest
from mbbpnnlib.atom_types import AtomTypeRegistry, get_topology
from mbbpnnlib.io.error import ConfigurationError


def test_registry_orders_types_by_first_appearance():
    registry = AtomTypeRegistry()
    assert [registry.insert_atom(a) for a in ["o", "H", "H", "O"]] == [0, 1, 1, 0]
    assert registry.type_names == ["O", "H"]
    assert registry.types == [0, 1, 1, 0]
    assert registry.natoms == 4
    assert registry.ntypes == 2
    assert registry.type_of(" h ") == 1
    with pytest.raises(ConfigurationError):
        registry.type_of("C")
    with pytest.raises(ConfigurationError):
        registry.insert_atom("  ")


def test_dimer_topology():
    topology = get_topology("2h2o_default")
    assert topology.atoms == ["O", "H", "H", "O", "H", "H"]
    assert topology.types == [0, 1, 1, 0, 1, 1]
    assert topology.size == 2
    assert topology.natoms == 6
    assert topology.anchor_atoms == [0, 3]
    assert topology.molecule_atoms(1) == [3, 4, 5]


def test_trimer_topology_alias():
    topology = get_topology(3)
    assert topology.name == "3h2o_default"
    assert topology.natoms == 9
    assert topology.anchor_atoms == [0, 3, 6]


def test_unknown_topology():
    with pytest.raises(ConfigurationError):
        get_topology("4h2o_default")
