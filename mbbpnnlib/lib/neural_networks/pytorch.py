import numpy as np
import torch
from mbbpnnlib.io.error import ConfigurationError, ModelLoadError, PreconditionViolation, StaleGradientError
from mbbpnnlib.io.loaders import write_network_params


activations = {"tanh": torch.nn.Tanh,
               "softplus": torch.nn.Softplus,
               "sigmoid": torch.nn.Sigmoid,
               "relu": torch.nn.ReLU,
               "linear": torch.nn.Identity}


def create_torch_network(layer_sizes, activation="tanh"):
    """
    Creates a pytorch network architecture from layer sizes.
    Every hidden layer is followed by the activation, the output layer is linear.

        Parameters:
            layer_sizes (list of ints): Size of each network layer, descriptor count first and 1 last
            activation (str): Name of the nonlinear activation function

        Return:
            Network Architecture of type neural network sequential

    """

    if activation not in activations:
        raise ConfigurationError(f"{activation} is not an activation, use one of {list(activations)}")

    layers = []
    for i in range(len(layer_sizes) - 1):
        layers.append(torch.nn.Linear(layer_sizes[i], layer_sizes[i + 1], bias=True))
        layers.append(activations[activation]())
    layers.pop()

    return torch.nn.Sequential(*layers)


class AtomicNetworks(torch.nn.Module):
    """
    One feed-forward network per atom type, mapping the descriptors of an atom onto its atomic
    energy. Parameters are frozen after construction.

    Args:
        networks (list): List of nn.Sequential network architectures, one per atom type in type
            index order.
        type_names (list): Atom type label of each network.
        descriptor_counts (list): Number of descriptors of each type.
        activation (str): Activation the networks were built with.
        dtype (torch.dtype): Working precision.
    """

    def __init__(self, networks, type_names, descriptor_counts, activation="tanh", dtype=torch.float64):
        super().__init__()

        self.dtype = dtype

        # every attribute makes a unique key in state_dict, so register each network on its own

        for indx, model in enumerate(networks):
            networks[indx].to(self.dtype)
            setattr(self, "network_architecture"+str(indx), networks[indx])

        self.networks = networks
        self.type_names = list(type_names)
        self.desc_len = list(descriptor_counts)
        self.activation = activation

        for p in self.parameters():
            p.requires_grad_(False)

    @classmethod
    def from_parameters(cls, params, type_names, descriptor_counts, activation="tanh", dtype=torch.float64):
        """
        Build networks from per-type weights and biases.

        Args:
            params (dict): Type label -> list of (weight, bias) arrays, weight of size (n_out, n_in).
            type_names (list): Atom type labels in type index order.
            descriptor_counts (list): Number of descriptors of each type.
            activation (str): Name of the activation function.
            dtype (torch.dtype): Working precision.
        """
        networks = []
        for label, count in zip(type_names, descriptor_counts):
            if label not in params:
                raise ModelLoadError(f"No network for atom type {label}")
            layers = params[label]
            sizes = [count]
            for k, (weight, bias) in enumerate(layers):
                weight = np.asarray(weight)
                bias = np.asarray(bias)
                if weight.ndim != 2 or weight.shape[1] != sizes[-1] or bias.shape != (weight.shape[0],):
                    raise ModelLoadError(f"Layer {k} of type {label} has weight {weight.shape} and bias "
                                         f"{bias.shape}, expected input width {sizes[-1]}")
                sizes.append(weight.shape[0])
            if sizes[-1] != 1:
                raise ModelLoadError(f"Network of type {label} ends with width {sizes[-1]}, expected 1")
            networks.append(create_torch_network(sizes, activation))

        model = cls(networks, type_names, descriptor_counts, activation, dtype)
        for indx, label in enumerate(type_names):
            model.import_wb(indx, [w for w, _ in params[label]], [b for _, b in params[label]])
        return model

    def forward(self, x, type_index):
        """
        Atomic energies of a batch of descriptor rows.

        Args:
            x (torch.Tensor): Descriptors of size (ncluster, n_features).
            type_index (int): Atom type of the rows.

        Returns:
            torch.Tensor: Energies of size (ncluster,).
        """
        return self.networks[type_index](x).flatten()

    def import_wb(self, type_index, weights, bias):
        """
        Imports weights and bias into the network of one atom type.

        Args:
            type_index (int): Atom type index.
            weights (list of numpy array of floats): Network weights at each layer.
            bias (list of numpy array of floats): Network bias at each layer.

        """

        network = self.networks[type_index]
        linear = [m for m in network if isinstance(m, torch.nn.Linear)]
        if len(weights) != len(bias) or len(linear) != len(weights):
            raise ModelLoadError(f"Network {type_index} has {len(linear)} layers, got {len(weights)} weights "
                                 f"and {len(bias)} biases")
        with torch.no_grad():
            for layer, w, b in zip(linear, weights, bias):
                if tuple(layer.weight.shape) != np.shape(w) or tuple(layer.bias.shape) != np.shape(b):
                    raise ModelLoadError(f"Network {type_index}: weight {np.shape(w)} does not fit layer "
                                         f"{tuple(layer.weight.shape)}")
                layer.weight.copy_(torch.as_tensor(np.asarray(w), dtype=self.dtype))
                layer.bias.copy_(torch.as_tensor(np.asarray(b), dtype=self.dtype))

    def export_wb(self):
        """Per-type (weight, bias) numpy arrays, the inverse of :meth:`import_wb`."""
        params = {}
        for label, network in zip(self.type_names, self.networks):
            params[label] = [(m.weight.detach().cpu().numpy(), m.bias.detach().cpu().numpy())
                             for m in network if isinstance(m, torch.nn.Linear)]
        return params

    def save(self, filename="AtomicNetworks.pt"):
        """
        Saves the state dict together with the type labels, or the plain per-type weights and
        biases if the file name ends with `.npz`.

        Args:
            filename (str): Output file name.

        """
        if filename.endswith(".npz"):
            write_network_params(filename, self.export_wb())
            return
        torch.save({"type_names": self.type_names,
                    "activation": self.activation,
                    "state_dict": self.state_dict()}, filename)


class NetworkInference():
    """
    Forward and backward passes of the atomic networks for one evaluation.

    `predict` keeps the forward graph of an atom until the matching `backward` consumes it, so a
    backward pass can never run on activations of a different input.

    Args:
        model (:obj:`AtomicNetworks`): Networks shared by all evaluations.
    """

    def __init__(self, model):
        self.model = model
        self._cache = {}

    def predict(self, atom, type_index, descriptor_matrix, feature_dim, batch_size):
        """
        Atomic energies of one atom for every configuration.

        Args:
            atom (int): Atom index; key of the cached forward pass.
            type_index (int): Network to use.
            descriptor_matrix (torch.Tensor): Descriptors of size (feature_dim, batch_size).
            feature_dim (int): Expected number of descriptors.
            batch_size (int): Expected number of configurations.

        Returns:
            torch.Tensor: Energies of size (batch_size,), detached from the graph.
        """
        if tuple(descriptor_matrix.shape) != (feature_dim, batch_size):
            raise ConfigurationError(f"Atom {atom} has descriptors of size {tuple(descriptor_matrix.shape)}, "
                                     f"expected ({feature_dim}, {batch_size})")
        x = descriptor_matrix.detach().t().contiguous().requires_grad_(True)
        with torch.enable_grad():
            energies = self.model(x, type_index)
        self._cache[atom] = (descriptor_matrix, descriptor_matrix._version, x, energies)
        return energies.detach()

    def backward(self, atom, seed_vector, batch_size, seed_width=1, descriptors=None):
        """
        Contract a seed through the cached forward pass of an atom.

        Args:
            atom (int): Atom index used in the matching :meth:`predict`.
            seed_vector: d(target)/d(atomic energy) per configuration, size (batch_size,) or
                (batch_size, seed_width).
            batch_size (int): Number of configurations.
            seed_width (int): Columns of the seed; only 1 is supported.
            descriptors (torch.Tensor, optional): Descriptors the caller believes were used.

        Returns:
            torch.Tensor: d(target)/d(descriptors) of size (feature_dim, batch_size).
        """
        if atom not in self._cache:
            raise StaleGradientError(f"No forward pass cached for atom {atom}, call predict before backward")
        matrix, version, x, energies = self._cache.pop(atom)
        if descriptors is not None and (descriptors is not matrix or descriptors._version != version):
            raise StaleGradientError(f"Descriptors of atom {atom} changed since the forward pass")
        if seed_width != 1:
            raise PreconditionViolation(f"Only a seed width of 1 is supported, got {seed_width}")

        seed = torch.as_tensor(seed_vector, dtype=x.dtype)
        if seed.dim() == 2 and seed.shape[1] == 1:
            seed = seed.flatten()
        if tuple(seed.shape) != (batch_size,) or energies.shape[0] != batch_size:
            raise PreconditionViolation(f"Seed of size {tuple(seed.shape)} does not match a batch of "
                                        f"{batch_size} configurations")

        dfdG = torch.autograd.grad(energies, x, grad_outputs=seed)[0]
        return dfdG.t()

    def release(self):
        self._cache.clear()
