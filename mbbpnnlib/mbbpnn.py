# <!----------------BEGIN-HEADER------------------------------------>
# ## MBbpnn
# A Python package for evaluating many-body Behler-Parrinello neural network potentials of
# water clusters.
#
# This software is distributed under the GNU General Public License.
# <!-----------------END-HEADER------------------------------------->

from enum import Enum
import numpy as np
import torch
from mbbpnnlib.parallel_tools import ParallelTools
from mbbpnnlib.io.input import Config
from mbbpnnlib.io.outputs.outputs import Output
from mbbpnnlib.io.error import ConfigurationError, PreconditionViolation
from mbbpnnlib.io.loaders import read_descriptor_params, read_scale_file, read_network_params
from mbbpnnlib.lib.neural_networks.descriptors.gfunction import GFunction
from mbbpnnlib.lib.neural_networks.pytorch import AtomicNetworks, NetworkInference
from mbbpnnlib.lib.switching import SwitchingFunction
from mbbpnnlib.scrapers.xyz_scraper import XYZ


class State(Enum):
    IDLE = 0
    DESCRIPTORS_BUILT = 1
    FORWARD_DONE = 2
    SWITCH_COMPUTED = 3
    BACKWARD_DONE = 4
    GRADIENT_ASSEMBLED = 5
    ENERGY_READY = 6


class EvaluationResult():
    """
    Energies, and optionally the gradient, of a batch of cluster configurations.

    Attributes:
        energy (float): Total switched energy in output units, summed over configurations.
        raw_energies (:obj:`numpy.ndarray`): Sum of atomic network outputs per configuration.
        switch_factors (:obj:`numpy.ndarray`): Switch factor per configuration.
        energies (:obj:`numpy.ndarray`): Switched energy per configuration in output units.
        atomic_energies (:obj:`numpy.ndarray`): Network output per atom and configuration, size
            (natom, ncluster).
        gradient (:obj:`numpy.ndarray`): d(energy)/d(coordinates) of size (3*natom, ncluster), or
            None if not requested.
        descriptors (list): Scaled descriptor matrix of every atom, each of size
            (n_features, ncluster), or None if not kept.
    """

    def __init__(self, topology, raw_energies, switch_factors, atomic_energies, eunit, gradient=None,
                 descriptors=None):
        self.atoms = list(topology.atoms)
        self.atoms_per_molecule = topology.atoms_per_molecule
        self.nmolecules = topology.size
        self.eunit = eunit
        self.raw_energies = np.asarray(raw_energies)
        self.switch_factors = np.asarray(switch_factors)
        self.atomic_energies = np.asarray(atomic_energies)
        self.gradient = None if gradient is None else np.asarray(gradient)
        self.descriptors = None if descriptors is None else [np.asarray(m) for m in descriptors]
        self.ncluster = self.raw_energies.shape[0]
        self.energies = self.raw_energies*self.switch_factors*eunit
        self.energy = float(np.sum(self.raw_energies*self.switch_factors)*eunit)

    def gradient_per_cluster(self):
        """Gradient of size (ncluster, natom, 3)."""
        if self.gradient is None:
            return None
        return self.gradient.T.reshape(self.ncluster, len(self.atoms), 3)

    def molecule_gradients(self):
        """Per molecule gradients, each in the flat layout of that molecule's coordinates."""
        grad = self.gradient_per_cluster()
        if grad is None:
            return None
        n = self.atoms_per_molecule
        return [np.ascontiguousarray(grad[:, m*n:(m+1)*n]).ravel() for m in range(self.nmolecules)]


class Evaluation():
    """
    One energy (and gradient) evaluation of a batch of configurations.

    The steps must run in order: `build_descriptors`, `forward`, `compute_switch`, then
    `backward` and `assemble_gradient` if the gradient was requested, and finally `finalize`.
    A step called out of order raises PreconditionViolation. The evaluation owns every per-call
    tensor; the shared model objects are only read.

    Args:
        descriptor (:obj:`GFunction`): Descriptor engine.
        networks (:obj:`AtomicNetworks`): Atomic networks.
        switch (:obj:`SwitchingFunction`): Switching function.
        eunit (float): Factor from network energies to output units.
        xyz: Flat coordinates of `ncluster` configurations.
        ncluster (int): Number of configurations.
        with_gradient (bool): Also compute the gradient.
        keep_descriptors (bool): Copy the descriptor matrices into the result.
    """

    def __init__(self, descriptor, networks, switch, eunit, xyz, ncluster, with_gradient=False,
                 keep_descriptors=False):
        self.descriptor = descriptor
        self.networks = networks
        self.switch = switch
        self.topology = descriptor.topology
        self.eunit = eunit
        self.xyz = xyz
        self.ncluster = ncluster
        self.with_gradient = with_gradient
        self.keep_descriptors = keep_descriptors
        self.state = State.IDLE

        self.descriptors = None
        self.energy_vector = None
        self.atomic_energies = None
        self.switch_factor = None
        self.dfdxyz = None
        self._inference = None
        self._dfdG = None

    def _require(self, state, step):
        if self.state != state:
            raise PreconditionViolation(f"Cannot {step} in state {self.state.name}, expected {state.name}")

    def build_descriptors(self):
        self._require(State.IDLE, "build descriptors")
        self.descriptors = self.descriptor.compute(self.xyz, self.topology.types, self.ncluster,
                                                   create_graph=self.with_gradient)
        self.state = State.DESCRIPTORS_BUILT

    def forward(self):
        """Atomic energies of every atom and their sum per configuration."""
        self._require(State.DESCRIPTORS_BUILT, "run the networks forward")
        self._inference = NetworkInference(self.networks)
        self.atomic_energies = torch.zeros(self.topology.natoms, self.ncluster, dtype=self.descriptor.dtype)
        for atom, type_index in enumerate(self.topology.types):
            self.atomic_energies[atom] = self._inference.predict(
                atom, type_index, self.descriptors[atom],
                self.descriptor.G_param_max_size[type_index], self.ncluster)
        self.energy_vector = self.atomic_energies.sum(dim=0)
        if not self.with_gradient:
            self._inference.release()
            self._inference = None
        self.state = State.FORWARD_DONE

    def compute_switch(self):
        self._require(State.FORWARD_DONE, "compute the switch")
        self.switch_factor = self.switch.compute_switch(self.descriptors.coordinates)
        self.state = State.SWITCH_COMPUTED

    def backward(self):
        """Descriptor gradients of the switched energy, seeded with the switch factors."""
        if not self.with_gradient:
            raise PreconditionViolation("This evaluation was created without gradient")
        self._require(State.SWITCH_COMPUTED, "run the networks backward")
        self._dfdG = [self._inference.backward(atom, self.switch_factor, self.ncluster,
                                               descriptors=self.descriptors[atom])
                      for atom in range(self.topology.natoms)]
        self._inference = None
        self.state = State.BACKWARD_DONE

    def assemble_gradient(self):
        """Cartesian gradient from the descriptor gradients plus the switch product-rule term."""
        self._require(State.BACKWARD_DONE, "assemble the gradient")
        try:
            dfdxyz = self.descriptor.contract(self.descriptors, self._dfdG)
        finally:
            self._dfdG = None
        self.switch.get_dfdx_from_switch(dfdxyz, self.descriptors.coordinates, self.energy_vector)
        self.dfdxyz = dfdxyz*self.eunit
        self.state = State.GRADIENT_ASSEMBLED

    def finalize(self):
        """
        Release the per-call tensors and return the result.

        Returns:
            :obj:`EvaluationResult`: Energies and gradient of this batch.
        """
        self._require(State.GRADIENT_ASSEMBLED if self.with_gradient else State.SWITCH_COMPUTED,
                      "finalize")
        descriptors = None
        if self.keep_descriptors:
            descriptors = [m.detach().numpy().copy() for m in self.descriptors]
        result = EvaluationResult(self.topology,
                                  self.energy_vector.numpy(),
                                  self.switch_factor.numpy(),
                                  self.atomic_energies.numpy(),
                                  self.eunit,
                                  None if self.dfdxyz is None else self.dfdxyz.detach().numpy(),
                                  descriptors)
        self.descriptors = None
        self.state = State.ENERGY_READY
        return result

    def steps(self):
        """Methods of this evaluation in execution order."""
        if self.with_gradient:
            return [self.build_descriptors, self.forward, self.compute_switch, self.backward,
                    self.assemble_gradient, self.finalize]
        return [self.build_descriptors, self.forward, self.compute_switch, self.finalize]


class Bpnn:
    """
    This class houses the objects needed to evaluate a many-body neural network potential of a
    water cluster, from coordinates to energy and gradient.

    Args:
        input (str): Optional dictionary or path to input file when using library mode; defaults to
                     None for executable use.
        comm: Optional MPI communicator when using library mode; defaults to None.
        arglist (list): Optional list of cmd line args when using library mode.

    Attributes:
        pt (:obj:`class` ParallelTools): Instance of the ParallelTools class for MPI communication.
        config (:obj:`class` Config): Instance of the Config class holding the settings.
        output (:obj:`class` Output): Screen, log and file output.
        topology (:obj:`class` Topology): Cluster topology of the model.
        descriptor (:obj:`class` GFunction): Descriptor engine.
        networks (:obj:`class` AtomicNetworks): Atomic networks of every atom type.
        switch (:obj:`class` SwitchingFunction): Switching function of the topology.
        eunit (float): Factor from network energies to output units.
    """
    def __init__(self, input=None, comm=None, arglist: list=[]):
        self.comm = comm
        self.pt = ParallelTools(comm=comm)
        self.config = Config(self.pt, input, arguments_lst=arglist)
        self.output = Output("mbbpnn", self.pt, self.config)
        self._closed = False

        model = self.config.sections["MODEL"]
        self.topology = model.topology
        self.strict_labels = model.strict_labels
        network = self.config.sections["NETWORK"]
        self.dtype = network.dtype
        self.eunit = network.eunit

        self.descriptor = None
        self.networks = None
        self.switch = None
        try:
            self.load_model()
        except Exception:
            self.pt.close_output()
            raise

    @classmethod
    def create(cls, topology, input, comm=None, arglist: list=[]):
        """
        Evaluator for a named topology, overriding the MODEL section of the input.

        Args:
            topology (str): Topology name or alias ("2", "3").
            input: Dictionary or path to input file.
        """
        return cls(input=input, comm=comm, arglist=list(arglist) + ["--topology", str(topology)])

    def __setattr__(self, name: str, value):
        """
        Override set attribute statement to prevent overwriting important attributes of an instance.
        """
        protected = ("pt", "config")
        if name in protected and hasattr(self, name):
            raise AttributeError(f"Overwriting {name} is not allowed; instead change {name} in place.")
        else:
            super().__setattr__(name, value)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.close()
        return False

    def load_model(self):
        """Read descriptor, scale and network files; raises ModelLoadError on a bad file."""
        def load_model():
            descriptor = self.config.sections["DESCRIPTOR"]
            network = self.config.sections["NETWORK"]
            switch = self.config.sections["SWITCH"]

            params = read_descriptor_params(descriptor.paramfile)
            counts = {label: len(params.get(label, [])) for label in self.topology.type_names}
            scale = read_scale_file(descriptor.scalefile, counts) if descriptor.scalefile else None
            self.descriptor = GFunction(self.topology, params, scale, self.dtype)
            self.networks = AtomicNetworks.from_parameters(read_network_params(network.paramfile),
                                                           self.topology.type_names,
                                                           self.descriptor.G_param_max_size,
                                                           network.activation, self.dtype)
            self.switch = SwitchingFunction(self.topology, switch.form, switch.radii, self.dtype)
            self.output.info(f"Read descriptors from {descriptor.paramfile} and networks from {network.paramfile}")
        if self.config.args.verbose:
            load_model = self.pt.single_timeit(load_model)
        load_model()

        self.output.screen(f"Initialized {self.topology.name} model: atoms {' '.join(self.topology.atoms)}, "
                           f"descriptors per type {dict(zip(self.topology.type_names, self.descriptor.G_param_max_size))}")

    def close(self):
        """Release the model parameters; the evaluator cannot be used afterwards."""
        self.descriptor = None
        self.networks = None
        self.switch = None
        self._closed = True
        self.pt.close_output()

    def _label_mismatch(self, msg):
        if self.strict_labels:
            raise ConfigurationError(msg)
        self.output.warning(msg)

    def _check_labels(self, labels, expected, where):
        labels = [str(label).strip().capitalize() for label in labels]
        if labels != list(expected):
            self._label_mismatch(f"{where}: atom labels {labels} do not match {list(expected)} "
                                 f"of {self.topology.name}")

    def _evaluate_local(self, xyz, ncluster, with_gradient, keep_descriptors=False):
        """Evaluate the block of configurations owned by this rank."""
        natoms = self.topology.natoms
        xyz = np.asarray(xyz, dtype=float).reshape(ncluster, natoms*3)
        block = self.pt.split_batch(ncluster)
        local = xyz[block]
        if local.shape[0] == 0:
            dtype = torch.empty(0, dtype=self.dtype).numpy().dtype
            descriptors = None
            if keep_descriptors:
                descriptors = [np.zeros((self.descriptor.G_param_max_size[t], 0), dtype)
                               for t in self.topology.types]
            return EvaluationResult(self.topology, np.zeros(0, dtype), np.zeros(0, dtype),
                                    np.zeros((natoms, 0), dtype), self.eunit,
                                    np.zeros((3*natoms, 0), dtype) if with_gradient else None,
                                    descriptors)

        evaluation = Evaluation(self.descriptor, self.networks, self.switch, self.eunit,
                                local, local.shape[0], with_gradient, keep_descriptors)
        result = None
        for step in evaluation.steps():
            if self.config.args.verbose:
                step = self.pt.single_timeit(step)
            result = step()
        return result

    def evaluate(self, xyz, ncluster, with_gradient=False, atoms=None, keep_descriptors=False):
        """
        Energy, and optionally gradient, of a batch of cluster configurations.

        Args:
            xyz: Flat coordinates in Angstrom, cluster then atom (canonical order) then x/y/z.
            ncluster (int): Number of configurations.
            with_gradient (bool): Also compute d(energy)/d(coordinates).
            atoms (list, optional): Atom labels of the cluster, flat or one list per molecule.
            keep_descriptors (bool): Return the scaled descriptor matrices of every atom.

        Returns:
            :obj:`EvaluationResult`: Total and per configuration energies, switch factors and
            gradient.
        """
        if self._closed:
            raise PreconditionViolation("Evaluator has been closed")
        if ncluster < 1:
            raise ConfigurationError(f"Need at least one cluster configuration, got {ncluster}")
        xyz = np.asarray(xyz, dtype=float).ravel()
        if xyz.size != ncluster*self.topology.natoms*3:
            raise ConfigurationError(f"Got {xyz.size} coordinates, expected {ncluster}*{self.topology.natoms}*3 "
                                     f"for {ncluster} {self.topology.name} configurations")
        if atoms is not None:
            if len(atoms) > 0 and isinstance(atoms[0], (list, tuple)):
                atoms = [label for molecule in atoms for label in molecule]
            self._check_labels(atoms, self.topology.atoms, "Cluster")

        local = self._evaluate_local(xyz, ncluster, with_gradient, keep_descriptors)
        if self.pt.get_size() == 1:
            return local
        gradient = None if local.gradient is None else self.pt.gather_batch(local.gradient, axis=1)
        descriptors = None
        if local.descriptors is not None:
            descriptors = [self.pt.gather_batch(m, axis=1) for m in local.descriptors]
        return EvaluationResult(self.topology,
                                self.pt.gather_batch(local.raw_energies, axis=0),
                                self.pt.gather_batch(local.switch_factors, axis=0),
                                self.pt.gather_batch(local.atomic_energies, axis=1),
                                self.eunit, gradient, descriptors)

    def _merge_molecules(self, ncluster, molecules, atoms=None):
        """Interleave per molecule coordinates into the flat cluster layout."""
        if len(molecules) != self.topology.size:
            raise ConfigurationError(f"{self.topology.name} needs {self.topology.size} molecules, "
                                     f"got {len(molecules)}")
        if ncluster < 1:
            raise ConfigurationError(f"Need at least one cluster configuration, got {ncluster}")
        if atoms is not None and len(atoms) != len(molecules):
            raise ConfigurationError(f"Got {len(atoms)} label lists for {len(molecules)} molecules")

        blocks = []
        for m, molecule in enumerate(molecules):
            xyz = np.asarray(molecule, dtype=float).ravel()
            if xyz.size % (3*ncluster) != 0:
                raise ConfigurationError(f"Molecule {m+1}: {xyz.size} coordinates do not split into "
                                         f"{ncluster} configurations of x/y/z triples")
            natoms = xyz.size//(3*ncluster)
            if natoms != self.topology.atoms_per_molecule:
                raise ConfigurationError(f"Molecule {m+1} has {natoms} atoms, {self.topology.name} expects "
                                         f"{self.topology.atoms_per_molecule}")
            if atoms is not None and atoms[m] is not None:
                self._check_labels(atoms[m], self.topology.molecule, f"Molecule {m+1}")
            blocks.append(xyz.reshape(ncluster, natoms*3))
        return np.concatenate(blocks, axis=1).ravel()

    def energy(self, ncluster, *molecules, atoms=None):
        """
        Total energy of `ncluster` configurations given per molecule coordinates.

        Args:
            ncluster (int): Number of configurations.
            *molecules: Flat coordinates of each molecule, cluster then atom then x/y/z.
            atoms (list, optional): Atom labels of each molecule.

        Returns:
            float: Energy in output units, summed over configurations.
        """
        xyz = self._merge_molecules(ncluster, molecules, atoms)
        return self.evaluate(xyz, ncluster, with_gradient=False).energy

    def energy_and_gradient(self, ncluster, *molecules, atoms=None):
        """
        Total energy and the gradient w.r.t. the coordinates of each molecule.

        Returns:
            tuple: (energy, grad1, grad2[, grad3]), every gradient in the layout of its molecule.
        """
        xyz = self._merge_molecules(ncluster, molecules, atoms)
        result = self.evaluate(xyz, ncluster, with_gradient=True)
        return (result.energy, *result.molecule_gradients())

    def evaluate_file(self, filename, with_gradient=False):
        """
        Evaluate every frame of a multi-frame XYZ file and write the OUTFILE dumps.

        Args:
            filename (str): XYZ file, one cluster configuration per frame.
            with_gradient (bool): Also compute the gradient.
        """
        scraper = XYZ(filename)
        scraper.scrape_configs()
        xyz, labels = scraper.to_batch(self.topology.natoms)
        for i, frame in enumerate(labels):
            self._check_labels(frame, self.topology.atoms, f"Frame {i}")
        outfile = self.config.sections["OUTFILE"]
        result = self.evaluate(xyz, len(labels), with_gradient=with_gradient,
                               keep_descriptors=outfile.dump_descriptors)

        if outfile.dump_perconfig:
            self.output.write_perconfig(result)
        if outfile.dump_gradient and with_gradient:
            self.output.write_gradient(result)
        if outfile.dump_descriptors:
            self.output.write_descriptors(result)
        return result

    def energy_from_file(self, filename, with_gradient=False):
        """Total energy of every configuration in a multi-frame XYZ file."""
        return self.evaluate_file(filename, with_gradient=with_gradient).energy
