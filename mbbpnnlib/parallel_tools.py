# <!----------------BEGIN-HEADER------------------------------------>
# ## MBbpnn
# A Python package for evaluating many-body Behler-Parrinello neural network potentials of
# water clusters.
#
# This software is distributed under the GNU General Public License.
# <!-----------------END-HEADER------------------------------------->

from time import time, sleep
import numpy as np
import signal


try:
    # stubs = 0 MPI is active
    stubs = 0
    from mpi4py import MPI
except ModuleNotFoundError:
    stubs = 1


def printf(*args, **kw):
    kw['flush'] = True
    print(" ".join(map(str, args)), **kw)


class GracefulError(BaseException):

    def __init__(self, *args, **kwargs):
        pass


class GracefulKiller:

    def __init__(self, comm):
        self._comm = comm
        self._rank = 0
        self.already_killed = False
        if self._comm is not None and self._comm.Get_size() > 1:
            self._rank = self._comm.Get_rank()
            signal.signal(signal.SIGINT, self.exit_gracefully)
            signal.signal(signal.SIGTERM, self.exit_gracefully)

    def exit_gracefully(self, signum, frame):
        if self._rank == 0:
            printf("attempting to exit gracefully")
        if self.already_killed:
            self._comm.Abort()
        raise GracefulError("exiting from exit code", signum, "at", frame)


def _rank_zero(method):
    def check_if_rank_zero(*args, **kw):
        if args[0].get_rank() == 0:
            return method(*args, **kw)
        else:
            return dummy_function()
    return check_if_rank_zero


def identity_decorator(self, obj):
    return obj


def _rank_zero_decorator(decorator):
    def check_if_rank_zero(*args, **kw):
        if args[0].get_rank() == 0:
            return decorator(*args, **kw)
        else:
            return identity_decorator(*args, **kw)
    return check_if_rank_zero


def dummy_function(*args, **kw):
    return None


def stub_check(method):
    def stub_function(*args, **kw):
        if stubs == 0:
            return method(*args, **kw)
        else:
            return dummy_function(*args, **kw)
    return stub_function


class ParallelTools():
    """
    This class holds the MPI communicator (or serial stubs) and the helpers used to split a batch
    of cluster configurations across processes, print from the head rank and time stages.

    Args:
        comm: Optional MPI communicator; defaults to `MPI.COMM_WORLD` when mpi4py is available.
    """

    def __init__(self, comm=None):
        if stubs == 0:
            if comm is None:
                comm = MPI.COMM_WORLD
            self._comm = comm
            self._rank = self._comm.Get_rank()
            self._size = self._comm.Get_size()

        if stubs == 1:
            self._rank = 0
            self._size = 1
            self._comm = None

        self.killer = GracefulKiller(self._comm)
        self.logger = None
        self.pytest = False
        self._fp = None

    def get_size(self):
        return self._size

    def get_rank(self):
        return self._rank

    @_rank_zero
    def single_print(self, *args, **kw):
        printf(*args, file=self._fp)

    def set_output(self, output_file, ps=False):
        if ps:
            self._fp = open(output_file+'_{}'.format(self._rank), 'w')
        else:
            if self._rank == 0:
                self._fp = open(output_file, 'w')

    def close_output(self):
        if self._fp is not None:
            self._fp.close()
            self._fp = None

    @_rank_zero_decorator
    def single_timeit(self, method):
        def timed(*args, **kw):
            ts = time()
            result = method(*args, **kw)
            te = time()
            if 'log_time' in kw:
                name = kw.get('log_name', method.__name__.upper())
                kw['log_time'][name] = int((te - ts) * 1000)
            else:
                printf("'{0}' took {1:.2f} ms on rank {2}".format(
                    method.__name__, (te - ts) * 1000, self._rank), file=self._fp)
            return result
        return timed

    def rank_zero(self, method):
        if self._rank == 0:
            def check_if_rank_zero(*args, **kw):
                return method(*args, **kw)
            return check_if_rank_zero
        else:
            return dummy_function

    @stub_check
    def all_barrier(self):
        self._comm.Barrier()

    def split_batch(self, nclusters):
        """
        Contiguous block of cluster configurations owned by this rank.

        Args:
            nclusters (int): Number of configurations in the whole batch.

        Returns:
            :obj:`slice`: Columns of the batch evaluated on this rank; the first
            `nclusters % size` ranks get one extra configuration.
        """
        per_rank, remainder = divmod(nclusters, self._size)
        start = self._rank * per_rank + min(self._rank, remainder)
        stop = start + per_rank + (1 if self._rank < remainder else 0)
        return slice(start, stop)

    def gather_batch(self, array, axis=0):
        """
        Concatenate per-rank blocks of a batch back into the full batch on every rank.

        Args:
            array (:obj:`numpy.ndarray`): Block evaluated on this rank.
            axis (int): Axis along which configurations are laid out.

        Returns:
            :obj:`numpy.ndarray`: Blocks of all ranks in rank order.
        """
        if stubs == 1 or self._size == 1:
            return array
        blocks = self._comm.allgather(np.ascontiguousarray(array))
        return np.concatenate(blocks, axis=axis)

    def set_logger(self, logger):
        self.logger = logger

    def pytest_is_true(self):
        self.pytest = True

    def abort(self):
        self._comm.Abort()

    def exception(self, err):
        self.killer.already_killed = True

        if self.logger is None and self._rank == 0:
            raise err

        if self._rank == 0:
            self.logger.exception(err)
            if self.pytest or self._size == 1:
                raise err

        sleep(5)
        if self._comm is not None:
            self.abort()
        raise err
