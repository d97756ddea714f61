from contextlib import contextmanager
import gzip
import logging
import numpy as np
import pandas as pd


class Output:
    """
    Screen, log and file output of an evaluator.

    Args:
        name (str): Name of the output, used in messages.
        pt (:obj:`ParallelTools`): Parallel tools instance.
        config (:obj:`Config`): Parsed input and command line arguments.
    """

    def __init__(self, name, pt, config):
        self.config = config
        self.pt = pt
        self.name = name
        self._screen = self.config.args.screen
        self._logfile = self.config.args.log
        self._s2f = self.config.args.screen2file
        if self._s2f is not None:
            self.pt.set_output(self._s2f)
        self.logger = None
        if not logging.getLogger().hasHandlers():
            self.pt.pytest_is_true()
        if self._logfile is None:
            logging.basicConfig(level=logging.INFO)
        else:
            logging.basicConfig(level=logging.INFO, filename=self._logfile)
        self.logger = logging.getLogger(__name__)
        self.pt.set_logger(self.logger)

    def screen(self, *args, **kw):
        if self._screen:
            self.pt.single_print(*args, **kw)
        else:
            pass

    def info(self, msg):
        @self.pt.rank_zero
        def decorated_info():
            self.logger.info(msg)
        decorated_info()

    def warning(self, msg):
        @self.pt.rank_zero
        def decorated_warning():
            self.logger.warning(msg)
        decorated_warning()

    def exception(self, err):
        self.pt.exception(err)

    def write_perconfig(self, result, fname=None):
        """
        Write per configuration energies.

        Args:
            result (:obj:`EvaluationResult`): Result of an evaluation.
            fname (str, optional): Output file; defaults to the OUTFILE perconfig file.
        """
        @self.pt.rank_zero
        def decorated_write_perconfig():
            df = pd.DataFrame({"Config": np.arange(result.ncluster),
                               "Raw_Energy": result.raw_energies,
                               "Switch": result.switch_factors,
                               "Energy": result.energies})
            with optional_open(fname or self.config.sections["OUTFILE"].perconfig_file, 'wt') as file:
                df.to_csv(file, sep=' ', float_format="%.10f", index=False)
        decorated_write_perconfig()

    def write_gradient(self, result, fname=None):
        """
        Write the gradient, one row per configuration and atom.

        Args:
            result (:obj:`EvaluationResult`): Result of an evaluation with gradient.
            fname (str, optional): Output file; defaults to the OUTFILE gradient file.
        """
        if result.gradient is None:
            raise ValueError("Evaluation has no gradient to write")

        @self.pt.rank_zero
        def decorated_write_gradient():
            grad = result.gradient_per_cluster()
            natoms = grad.shape[1]
            df = pd.DataFrame({"Config": np.repeat(np.arange(result.ncluster), natoms),
                               "Atom": np.tile(np.arange(natoms), result.ncluster),
                               "Type": np.tile(result.atoms, result.ncluster),
                               "dE_dx": grad[:, :, 0].ravel(),
                               "dE_dy": grad[:, :, 1].ravel(),
                               "dE_dz": grad[:, :, 2].ravel()})
            with optional_open(fname or self.config.sections["OUTFILE"].gradient_file, 'wt') as file:
                df.to_csv(file, sep=' ', float_format="%.10f", index=False)
        decorated_write_gradient()

    def write_descriptors(self, result, fname=None):
        """
        Write the scaled descriptors, one row per configuration, atom and descriptor.

        Args:
            result (:obj:`EvaluationResult`): Result of an evaluation that kept its descriptors.
            fname (str, optional): Output file; defaults to the OUTFILE descriptors file.
        """
        if result.descriptors is None:
            raise ValueError("Evaluation has no descriptors to write")

        @self.pt.rank_zero
        def decorated_write_descriptors():
            frames = []
            for atom, (label, matrix) in enumerate(zip(result.atoms, result.descriptors)):
                nfeatures = matrix.shape[0]
                frames.append(pd.DataFrame({"Config": np.repeat(np.arange(result.ncluster), nfeatures),
                                            "Atom": atom,
                                            "Type": label,
                                            "G": np.tile(np.arange(nfeatures), result.ncluster),
                                            "Value": matrix.T.ravel()}))
            df = pd.concat(frames, ignore_index=True).sort_values(["Config", "Atom", "G"], kind="stable")
            with optional_open(fname or self.config.sections["OUTFILE"].descriptor_file, 'wt') as file:
                df.to_csv(file, sep=' ', float_format="%.18e", index=False)
        decorated_write_descriptors()


@contextmanager
def optional_open(file, mode, *args, openfn=None, **kwargs):
    """If file is None, yields a dummy file object."""
    if file is None:
        yield None
    else:
        if openfn is None:
            openfn = gzip.open if file.endswith('.gz') else open
        with openfn(file, mode, *args, **kwargs) as open_file:
            yield open_file

