from mbbpnnlib.io.sections.sections import Section


class Switch(Section):

    def __init__(self, name, config, pt, infile, args):
        super().__init__(name, config, pt, infile, args)
        self.allowedkeys = ['form', 'r2i', 'r2f', 'r3i', 'r3f']
        self._check_section()

        self.form = self.get_value("SWITCH", "form", "cosine").lower()
        if self.form not in ("cosine", "cubic"):
            raise ValueError(f"{self.form} is not a switch form, use cosine or cubic")

        # inner and outer O-O radii in Angstrom, per topology size

        self.radii = {2: (self.get_value("SWITCH", "r2i", "5.5", "float"),
                          self.get_value("SWITCH", "r2f", "6.5", "float")),
                      3: (self.get_value("SWITCH", "r3i", "0.0", "float"),
                          self.get_value("SWITCH", "r3f", "4.5", "float"))}
        for size, (ri, rf) in self.radii.items():
            if not (0.0 <= ri < rf):
                raise ValueError(f"Switch radii for {size}-body must satisfy 0 <= inner < outer, got {ri} {rf}")

        self.delete()
