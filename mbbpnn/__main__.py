# <!----------------BEGIN-HEADER------------------------------------>
# ## MBbpnn
# A Python package for evaluating many-body Behler-Parrinello neural network potentials of
# water clusters.
#
# This software is distributed under the GNU General Public License.
# <!-----------------END-HEADER------------------------------------->

from mbbpnnlib.mbbpnn import Bpnn

try:
    from mpi4py import MPI
    comm = MPI.COMM_WORLD
except ModuleNotFoundError:
    comm = None


def main():
    # Instantiate a single evaluator; model files are read here and construction
    # errors propagate without a logger to report them.
    bpnn = Bpnn(comm=comm)
    try:
        args = bpnn.config.args
        units = bpnn.config.sections["NETWORK"].output_units
        if args.verbose:
            bpnn.config.view_state()
        if args.xyzfile is None:
            bpnn.output.screen("No --xyz file given, model initialized only.")
            return
        result = bpnn.evaluate_file(args.xyzfile, with_gradient=args.gradient)
        for c in range(result.ncluster):
            bpnn.output.screen(f"Config {c}: raw {result.raw_energies[c]:.9f} switch "
                               f"{result.switch_factors[c]:.9f} energy {result.energies[c]:.9f} {units}")
        bpnn.output.screen(f"Total energy: {result.energy:.9f} {units}")
        if args.gradient:
            grad = result.gradient_per_cluster()
            for c in range(result.ncluster):
                bpnn.output.screen(f"Gradient of config {c} ({units}/Angstrom):")
                for atom, label in enumerate(result.atoms):
                    bpnn.output.screen(f"  {label:2s} {grad[c, atom, 0]: .9f} {grad[c, atom, 1]: .9f} "
                                       f"{grad[c, atom, 2]: .9f}")
        bpnn.pt.all_barrier()
    except Exception as e:
        bpnn.output.exception(e)
    finally:
        bpnn.close()


if __name__ == "__main__":
    main()
