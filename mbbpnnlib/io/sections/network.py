from mbbpnnlib.io.sections.sections import Section
from mbbpnnlib.units.units import convert
import torch


class Network(Section):

    def __init__(self, name, config, pt, infile, args):
        super().__init__(name, config, pt, infile, args)
        self.allowedkeys = ['paramfile', 'activation', 'dtype_setting', 'energy_scale',
                            'network_units', 'output_units']
        self._check_section()

        self.paramfile = self.resolve_path(self.get_value("NETWORK", "paramfile", "None"))
        if self.paramfile is None:
            raise RuntimeError(">>> NETWORK section needs a paramfile")
        self.activation = self.get_value("NETWORK", "activation", "tanh").lower()
        self.dtype_setting = self.get_value("NETWORK", "dtype_setting", "2", "int")
        if (self.dtype_setting==1):
            self.dtype = torch.float32
        else:
            self.dtype = torch.float64

        # network outputs are in units of energy_scale*network_units, reported in output_units

        self.energy_scale = self.get_value("NETWORK", "energy_scale", "6.0", "float")
        self.network_units = self.get_value("NETWORK", "network_units", "eV")
        self.output_units = self.get_value("NETWORK", "output_units", "kcal/mol")
        self.eunit = self.energy_scale * convert("energy", self.network_units, self.output_units)

        self.delete()
