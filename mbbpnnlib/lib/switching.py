import math
from itertools import combinations
import torch
from mbbpnnlib.io.error import ConfigurationError


class SwitchingFunction():
    """
    Smooth weight that takes a many-body energy to zero as the molecules of a cluster separate.

    The switch acts on the distances between the anchor atoms (oxygens) of the molecules. A
    dimer uses the switch of its single distance, a trimer combines its three pair switches as
    s12*s13 + s12*s23 + s13*s23, which vanishes once any molecule leaves the range of both others.

    Args:
        topology (:obj:`Topology`): Cluster topology; its size selects the radii.
        form (str): "cosine" or "cubic".
        radii (dict): Topology size -> (inner, outer) radius in Angstrom.
        dtype (:obj:`torch.dtype`): Working precision.
    """

    def __init__(self, topology, form="cosine", radii=None, dtype=torch.float64):
        if radii is None:
            radii = {2: (5.5, 6.5), 3: (0.0, 4.5)}
        if topology.size not in radii:
            raise ConfigurationError(f"No switching radii for {topology.size}-body clusters")
        if form not in ("cosine", "cubic"):
            raise ConfigurationError(f"{form} is not a switch form, use cosine or cubic")
        self.topology = topology
        self.size = topology.size
        self.form = form
        self.dtype = dtype
        self.ri, self.rf = radii[self.size]
        self.pairs = list(combinations(topology.anchor_atoms, 2))

    def switch(self, r):
        """
        One-dimensional switch and its derivative.

        Args:
            r (torch.Tensor): Distances of any shape.

        Returns:
            (torch.Tensor, torch.Tensor): s(r) and ds/dr, exactly 1 and 0 inside the inner radius
            and exactly 0 and 0 beyond the outer radius.
        """
        width = self.rf - self.ri
        t = torch.clamp((r - self.ri)/width, 0.0, 1.0)
        if self.form == "cosine":
            s = 0.5*(1.0 + torch.cos(math.pi*t))
            ds = -0.5*math.pi*torch.sin(math.pi*t)/width
        else:
            s = 1.0 + t*t*(2.0*t - 3.0)
            ds = 6.0*t*(t - 1.0)/width
        inside = r <= self.ri
        outside = r >= self.rf
        s = torch.where(inside, torch.ones_like(s), torch.where(outside, torch.zeros_like(s), s))
        ds = torch.where(inside | outside, torch.zeros_like(ds), ds)
        return s, ds

    def _pair_switches(self, coordinates):
        xyz = coordinates.detach().to(self.dtype)
        vectors = [xyz[:, a] - xyz[:, b] for a, b in self.pairs]
        distances = [torch.linalg.norm(v, dim=1) for v in vectors]
        switches = [self.switch(r) for r in distances]
        return vectors, distances, switches

    def _combine(self, switches):
        """Switch factor and its derivative w.r.t. every pair switch."""
        s = [sw[0] for sw in switches]
        if self.size == 2:
            return s[0], [torch.ones_like(s[0])]
        s12, s13, s23 = s
        factor = s12*s13 + s12*s23 + s13*s23
        return factor, [s13 + s23, s12 + s23, s12 + s13]

    def compute_switch(self, coordinates):
        """
        Switch factor of every configuration.

        Args:
            coordinates (torch.Tensor): Coordinates of size (ncluster, natom, 3).

        Returns:
            torch.Tensor: Switch factors of size (ncluster,).
        """
        _, _, switches = self._pair_switches(coordinates)
        factor, _ = self._combine(switches)
        return factor

    def derivative(self, coordinates):
        """
        Derivative of the switch factor w.r.t. the coordinates.

        Args:
            coordinates (torch.Tensor): Coordinates of size (ncluster, natom, 3).

        Returns:
            torch.Tensor: dS/dx of size (3*natom, ncluster).
        """
        vectors, distances, switches = self._pair_switches(coordinates)
        _, dfactor = self._combine(switches)
        nc, natoms = coordinates.shape[0], coordinates.shape[1]
        grad = torch.zeros(nc, natoms, 3, dtype=self.dtype)
        for (a, b), v, r, (_, ds), dpair in zip(self.pairs, vectors, distances, switches, dfactor):
            dvec = (dpair*ds/r).unsqueeze(1)*v
            grad[:, a] += dvec
            grad[:, b] -= dvec
        return grad.reshape(nc, 3*natoms).t()

    def get_dfdx_from_switch(self, dfdxyz, coordinates, energy_vector):
        """
        Add the product-rule term E*dS/dx to a gradient.

        Args:
            dfdxyz (torch.Tensor): Gradient of size (3*natom, ncluster), updated in place.
            coordinates (torch.Tensor): Coordinates of size (ncluster, natom, 3).
            energy_vector (torch.Tensor): Unswitched cluster energies of size (ncluster,).

        Returns:
            torch.Tensor: The updated `dfdxyz`.
        """
        dfdxyz += self.derivative(coordinates)*energy_vector.to(self.dtype).unsqueeze(0)
        return dfdxyz
