from mbbpnnlib.io.sections.sections import Section


class Descriptor(Section):

    def __init__(self, name, config, pt, infile, args):
        super().__init__(name, config, pt, infile, args)
        self.allowedkeys = ['paramfile', 'scalefile']
        self._check_section()

        self.paramfile = self.resolve_path(self.get_value("DESCRIPTOR", "paramfile", "None"))
        self.scalefile = self.resolve_path(self.get_value("DESCRIPTOR", "scalefile", "None"))
        if self.paramfile is None:
            raise RuntimeError(">>> DESCRIPTOR section needs a paramfile")

        self.delete()
