from mbbpnnlib.io.sections.sections import Section
from mbbpnnlib.atom_types import get_topology


class Model(Section):

    def __init__(self, name, config, pt, infile, args):
        super().__init__(name, config, pt, infile, args)
        self.allowedkeys = ['topology', 'strict_labels']
        self._check_section()

        self.topology_name = self.get_value("MODEL", "topology", "2h2o_default")
        if self._args is not None and getattr(self._args, "topology", None):
            self.topology_name = self._args.topology
        # raises ConfigurationError for an unknown topology
        self.topology = get_topology(self.topology_name)
        self.strict_labels = self.get_value("MODEL", "strict_labels", "True", "bool")

        self.delete()
