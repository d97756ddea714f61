import numpy as np
from os import path
from mbbpnnlib.io.error import ConfigurationError


def _read_xyz_frame(lines, natoms):
    # comment line
    data = {'Comment': next(lines).strip()}

    symbols = []
    positions = []
    for ln in range(natoms):
        try:
            line = next(lines)
        except StopIteration:
            raise ConfigurationError('xyz scraper: Frame has {} atoms, expected {}'.format(len(symbols), natoms))
        vals = line.split()
        if len(vals) < 4:
            raise ConfigurationError('xyz scraper: Expected "label x y z", got "{}"'.format(line.strip()))
        symbols.append(vals[0].capitalize())
        try:
            positions.append([float(v) for v in vals[1:4]])
        except ValueError:
            raise ConfigurationError('xyz scraper: Bad coordinates in "{}"'.format(line.strip()))

    data['AtomTypes'] = symbols
    data['Positions'] = np.array(positions)
    data['NumAtoms'] = natoms
    return data


class XYZ:
    """
    Reader for multi-frame XYZ files holding one cluster configuration per frame.

    Args:
        filename (str): Path to the XYZ file.
    """

    def __init__(self, filename):
        self.filename = filename
        self.data = []

    def scrape_configs(self):
        """
        Read every frame.

        Returns:
            list: One dictionary per frame with keys 'AtomTypes', 'Positions', 'NumAtoms' and
            'Comment'.
        """
        if not path.isfile(self.filename):
            raise FileNotFoundError(f"XYZ file {self.filename} not found")
        self.data = []
        with open(self.filename, 'r') as fp:
            file = iter(fp)
            while True:
                try:
                    line = next(file)
                except StopIteration:
                    break
                if not line.strip():
                    continue
                try:
                    num_atoms = int(line.split()[0])
                except ValueError:
                    raise ConfigurationError(f"xyz scraper: Expected an atom count, got \"{line.strip()}\"")
                try:
                    self.data.append(_read_xyz_frame(file, num_atoms))
                except StopIteration:
                    raise ConfigurationError(f"xyz scraper: Frame {len(self.data)} has no comment line")
        if not self.data:
            raise ConfigurationError(f"xyz scraper: No frame found in {self.filename}")
        return self.data

    def to_batch(self, natoms):
        """
        Flatten the scraped frames into one batch.

        Args:
            natoms (int): Atom count every frame must have.

        Returns:
            (:obj:`numpy.ndarray`, list): Flat coordinates, cluster-major then atom then x/y/z, and
            the atom labels of every frame.
        """
        for i, data in enumerate(self.data):
            if data['NumAtoms'] != natoms:
                raise ConfigurationError(f"xyz scraper: Frame {i} has {data['NumAtoms']} atoms, expected {natoms}")
        xyz = np.concatenate([data['Positions'].ravel() for data in self.data])
        return xyz, [data['AtomTypes'] for data in self.data]
