from mbbpnnlib.io.sections.sections import Section


class Outfile(Section):

    def __init__(self, name, config, pt, infile, args):
        super().__init__(name, config, pt, infile, args)
        self.allowedkeys = ['dump_perconfig', 'perconfig', 'dump_gradient', 'gradient',
                            'dump_descriptors', 'descriptors']
        self._check_section()

        self.dump_perconfig = self.get_value("OUTFILE", "dump_perconfig", "False", "bool")
        self.dump_gradient = self.get_value("OUTFILE", "dump_gradient", "False", "bool")
        self.dump_descriptors = self.get_value("OUTFILE", "dump_descriptors", "False", "bool")
        self.perconfig_file = self.check_path(self.get_value("OUTFILE", "perconfig", "perconfig.dat")) \
            if self.dump_perconfig else None
        self.gradient_file = self.check_path(self.get_value("OUTFILE", "gradient", "gradient.dat")) \
            if self.dump_gradient else None
        self.descriptor_file = self.check_path(self.get_value("OUTFILE", "descriptors", "descriptors.dat")) \
            if self.dump_descriptors else None

        self.delete()
