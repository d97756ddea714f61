from mbbpnnlib.io.error import ConfigurationError


class AtomTypeRegistry():
    """
    Maps atom labels onto type indices, in order of first insertion, and keeps the canonical atom
    sequence of a cluster.

    Attributes:
        atoms (:obj:`list` of :obj:`str`): Atom labels in canonical order.
        type_names (:obj:`list` of :obj:`str`): Distinct labels; the position of a label is its
            type index.
    """

    def __init__(self):
        self.atoms = []
        self.type_names = []
        self._type_index = {}

    def insert_atom(self, label):
        """Append an atom to the canonical sequence and return its type index."""
        label = label.strip().capitalize()
        if not label:
            raise ConfigurationError("Empty atom label")
        if label not in self._type_index:
            self._type_index[label] = len(self.type_names)
            self.type_names.append(label)
        self.atoms.append(label)
        return self._type_index[label]

    def type_of(self, label):
        try:
            return self._type_index[label.strip().capitalize()]
        except KeyError:
            raise ConfigurationError(f"Atom label {label} is not part of this model: {self.type_names}")

    @property
    def types(self):
        """Type index of every atom in canonical order."""
        return [self._type_index[a] for a in self.atoms]

    @property
    def natoms(self):
        return len(self.atoms)

    @property
    def ntypes(self):
        return len(self.type_names)


class Topology():
    """
    A cluster of identical molecules with a fixed canonical atom order.

    Args:
        name (str): Topology name, e.g. "2h2o_default".
        molecule (:obj:`list` of :obj:`str`): Atom labels of one molecule; the first atom is the
            one whose distances drive the switching function (oxygen for water).
        nmolecules (int): Number of molecules in the cluster.
    """

    def __init__(self, name, molecule, nmolecules):
        self.name = name
        self.molecule = list(molecule)
        self.size = nmolecules
        self.registry = AtomTypeRegistry()
        for _ in range(nmolecules):
            for label in self.molecule:
                self.registry.insert_atom(label)

    @property
    def atoms(self):
        return self.registry.atoms

    @property
    def types(self):
        return self.registry.types

    @property
    def type_names(self):
        return self.registry.type_names

    @property
    def natoms(self):
        return self.registry.natoms

    @property
    def atoms_per_molecule(self):
        return len(self.molecule)

    def molecule_atoms(self, m):
        """Atom indices belonging to molecule `m`."""
        n = self.atoms_per_molecule
        return list(range(m*n, (m+1)*n))

    @property
    def anchor_atoms(self):
        """Index of the first atom of every molecule."""
        return [m*self.atoms_per_molecule for m in range(self.size)]

    def __repr__(self):
        return f"Topology({self.name}, {' '.join(self.atoms)})"


water = ["O", "H", "H"]

topologies = {"2h2o_default": (water, 2),
              "3h2o_default": (water, 3)}

aliases = {"2": "2h2o_default",
           "3": "3h2o_default"}


def get_topology(name):
    """Topology Factory"""
    name = aliases.get(str(name), str(name))
    if name not in topologies:
        raise ConfigurationError("{} was not found in mbbpnn topologies: {}".format(name, list(topologies)))
    molecule, nmolecules = topologies[name]
    return Topology(name, molecule, nmolecules)
