import math
from itertools import combinations
import numpy as np
import torch
from mbbpnnlib.io.error import ConfigurationError, ModelLoadError, PreconditionViolation


class SymmetryFunction():
    """
    One Behler-Parrinello G-function of a centre atom type.

    Args:
        kind (str): "rad" for radial, "ang" for angular functions.
        neighbors (tuple): Neighbour type label(s), one for radial and two for angular functions.
        rc (float): Cutoff radius in Angstrom.
        eta (float): Gaussian width parameter.
        rs (float, optional): Gaussian centre of radial functions.
        zeta (float, optional): Angular resolution, at least 1.
        lam (float, optional): Angular phase, +1 or -1.
    """

    def __init__(self, kind, neighbors, rc, eta, rs=0.0, zeta=1.0, lam=1.0):
        if kind not in ("rad", "ang"):
            raise ValueError(f"unknown G-function kind {kind}")
        if len(neighbors) != (1 if kind == "rad" else 2):
            raise ValueError(f"{kind} function needs {1 if kind == 'rad' else 2} neighbour types")
        if rc <= 0.0:
            raise ValueError(f"cutoff must be positive, got {rc}")
        if kind == "ang":
            if zeta < 1.0:
                raise ValueError(f"zeta must be >= 1, got {zeta}")
            if lam not in (-1.0, 1.0):
                raise ValueError(f"lambda must be +1 or -1, got {lam}")
        self.kind = kind
        self.neighbors = tuple(neighbors)
        self.rc = rc
        self.eta = eta
        self.rs = rs
        self.zeta = zeta
        self.lam = lam

    def __repr__(self):
        if self.kind == "rad":
            return f"rad {self.neighbors[0]} rc={self.rc} eta={self.eta} rs={self.rs}"
        return f"ang {' '.join(self.neighbors)} rc={self.rc} eta={self.eta} zeta={self.zeta} lambda={self.lam}"


class DescriptorSet(list):
    """
    Per-atom descriptor matrices of one batch, each of size (n_features[type], ncluster).

    Attributes:
        coordinates (:obj:`torch.Tensor`): Coordinates of size (ncluster, natom, 3) the descriptors
            were computed from.
        has_graph (bool): True if the autograd graph back to the coordinates was kept.
    """

    def __init__(self, matrices, coordinates, has_graph):
        super().__init__(matrices)
        self.coordinates = coordinates
        self.has_graph = has_graph


class GFunction():
    """
    Class to calculate scaled Behler-Parrinello G-function descriptors for every atom of a fixed
    cluster topology, batched over cluster configurations.

    The neighbour lists of a topology never change, so they are planned once at construction: for
    every atom and every function the indices of the contributing neighbours (radial) or neighbour
    pairs (angular) are stored as index tensors.

    Args:
        topology (:obj:`Topology`): Cluster topology.
        params (dict): Centre type label -> list of :obj:`SymmetryFunction`.
        scale (dict, optional): Type label -> (min, max) arrays; no scaling if None.
        dtype (:obj:`torch.dtype`): Working precision.
    """

    def __init__(self, topology, params, scale=None, dtype=torch.float64):
        self.topology = topology
        self.dtype = dtype
        self.params = {}
        for label in topology.type_names:
            if not params.get(label):
                raise ModelLoadError(f"No G-function defined for atom type {label}")
            self.params[label] = params[label]
        self.G_param_max_size = [len(self.params[label]) for label in topology.type_names]

        self._shift = {}
        self._width = {}
        for label in topology.type_names:
            if scale is None:
                continue
            gmin, gmax = (torch.as_tensor(np.asarray(v, dtype=float), dtype=dtype) for v in scale[label])
            width = gmax - gmin
            # dimensions that never varied are only shifted
            width[width == 0] = 1.0
            self._shift[label] = gmin.unsqueeze(1)
            self._width[label] = width.unsqueeze(1)

        self._plan = [self._plan_atom(i) for i in range(topology.natoms)]

    def _plan_atom(self, i):
        atoms = self.topology.atoms
        others = [j for j in range(len(atoms)) if j != i]
        plan = []
        for function in self.params[atoms[i]]:
            if function.kind == "rad":
                idx = [j for j in others if atoms[j] == function.neighbors[0]]
                plan.append((function, torch.tensor(idx, dtype=torch.long)))
            else:
                wanted = sorted(function.neighbors)
                pairs = [(j, k) for j, k in combinations(others, 2) if sorted((atoms[j], atoms[k])) == wanted]
                plan.append((function,
                             torch.tensor([p[0] for p in pairs], dtype=torch.long),
                             torch.tensor([p[1] for p in pairs], dtype=torch.long)))
        return plan

    def cutoff_function(self, rij, rc):
        """
        Cosine cutoff, 0.5*(cos(pi*r/rc) + 1) inside the cutoff and zero beyond it.

        Args:
            rij (:obj:`torch.Tensor`): Distances of any shape.
            rc (float): Cutoff radius.
        """
        function = 0.5 + 0.5*torch.cos(math.pi*rij/rc)
        return torch.where(rij < rc, function, torch.zeros_like(rij))

    def _distance_matrix(self, xyz):
        natoms = xyz.shape[1]
        # upper triangle only, sqrt has no derivative at the zero diagonal
        pi, pj = torch.triu_indices(natoms, natoms, 1)
        rij = torch.linalg.norm(xyz[:, pi] - xyz[:, pj], dim=2)
        dist = xyz.new_zeros(xyz.shape[0], natoms, natoms)
        dist[:, pi, pj] = rij
        dist[:, pj, pi] = rij
        return dist

    def _radial(self, function, dist, i, idx):
        rij = dist[:, i, idx]
        g = torch.exp(-function.eta*(rij - function.rs)**2) * self.cutoff_function(rij, function.rc)
        return g.sum(dim=1)

    def _angular(self, function, dist, i, jdx, kdx):
        rij = dist[:, i, jdx]
        rik = dist[:, i, kdx]
        rjk = dist[:, jdx, kdx]
        cos_ijk = (rij**2 + rik**2 - rjk**2)/(2.0*rij*rik)
        base = torch.clamp(1.0 + function.lam*cos_ijk, min=0.0)
        g = base**function.zeta \
            * torch.exp(-function.eta*(rij**2 + rik**2 + rjk**2)) \
            * self.cutoff_function(rij, function.rc) \
            * self.cutoff_function(rik, function.rc) \
            * self.cutoff_function(rjk, function.rc)
        return 2.0**(1.0 - function.zeta) * g.sum(dim=1)

    def coordinates_tensor(self, coordinates, cluster_count, requires_grad=False):
        """
        Reshape flat or (ncluster, natom, 3) coordinates into a tensor of the working precision.

        Args:
            coordinates: Array-like or :obj:`torch.Tensor` with ncluster*natom*3 values.
            cluster_count (int): Number of configurations.
            requires_grad (bool): Return a fresh leaf that tracks gradients.
        """
        natoms = self.topology.natoms
        if cluster_count < 1:
            raise ConfigurationError(f"Need at least one cluster configuration, got {cluster_count}")
        if isinstance(coordinates, torch.Tensor):
            xyz = coordinates
            if xyz.dtype != self.dtype:
                xyz = xyz.to(self.dtype)
        else:
            xyz = torch.as_tensor(np.asarray(coordinates, dtype=float), dtype=self.dtype)
        if xyz.numel() != cluster_count*natoms*3:
            raise ConfigurationError(f"Got {xyz.numel()} coordinates, expected {cluster_count}*{natoms}*3 "
                                     f"for {cluster_count} {self.topology.name} configurations")
        xyz = xyz.reshape(cluster_count, natoms, 3)
        if requires_grad and not xyz.requires_grad:
            xyz = xyz.detach().clone().requires_grad_(True)
        return xyz

    def compute(self, coordinates, atom_types, cluster_count, create_graph=False):
        """
        Calculate scaled descriptors for every atom and configuration.

        Args:
            coordinates: Flat or (ncluster, natom, 3) coordinates in canonical atom order.
            atom_types (:obj:`list` of :obj:`int`): Type index of every atom.
            cluster_count (int): Number of configurations.
            create_graph (bool): Keep the autograd graph back to the coordinates so that
                :meth:`contract` can be called on the result.

        Returns:
            :obj:`DescriptorSet`: One (n_features[type], ncluster) matrix per atom.
        """
        if list(atom_types) != self.topology.types:
            raise ConfigurationError(f"Atom types {list(atom_types)} do not match the "
                                     f"{self.topology.name} types {self.topology.types}")
        xyz = self.coordinates_tensor(coordinates, cluster_count, requires_grad=create_graph)

        with torch.set_grad_enabled(create_graph):
            dist = self._distance_matrix(xyz)
            matrices = []
            for i, plan in enumerate(self._plan):
                features = []
                for entry in plan:
                    if entry[0].kind == "rad":
                        features.append(self._radial(entry[0], dist, i, entry[1]))
                    else:
                        features.append(self._angular(entry[0], dist, i, entry[1], entry[2]))
                descriptors = torch.stack(features, dim=0)
                label = self.topology.atoms[i]
                if label in self._shift:
                    descriptors = (descriptors - self._shift[label])/self._width[label]
                matrices.append(descriptors)

        return DescriptorSet(matrices, xyz, create_graph)

    def contract(self, descriptors, dfdG, create_graph=False):
        """
        Contract descriptor gradients with the descriptor Jacobian.

        Args:
            descriptors (:obj:`DescriptorSet`): Result of :meth:`compute` with `create_graph=True`.
            dfdG (:obj:`list` of :obj:`torch.Tensor`): Per-atom d(energy)/d(descriptor), each of the
                same size as the matching descriptor matrix.
            create_graph (bool): Differentiate the result again.

        Returns:
            :obj:`torch.Tensor`: Gradient of size (3*natom, ncluster), rows ordered atom then x/y/z.
        """
        if not getattr(descriptors, "has_graph", False):
            raise PreconditionViolation("Descriptors were computed without a graph, call compute with "
                                        "create_graph=True before contract")
        if len(dfdG) != len(descriptors):
            raise PreconditionViolation(f"Got {len(dfdG)} descriptor gradients for {len(descriptors)} atoms")
        xyz = descriptors.coordinates
        # atoms without any neighbour in range have constant descriptors
        pairs = [(g, d) for g, d in zip(descriptors, dfdG) if g.requires_grad]
        grads = None
        if pairs:
            grads = torch.autograd.grad([p[0] for p in pairs], xyz, grad_outputs=[p[1] for p in pairs],
                                        create_graph=create_graph, allow_unused=True)[0]
        if grads is None:
            grads = torch.zeros_like(xyz)
        return grads.reshape(xyz.shape[0], -1).t()
