from mbbpnnlib.io.error import ExitFunc
from os import getcwd, path


def strtobool(value):
    """Convert a string representation of truth to True or False."""
    value = str(value).lower()
    if value in ('y', 'yes', 't', 'true', 'on', '1'):
        return True
    elif value in ('n', 'no', 'f', 'false', 'off', '0'):
        return False
    else:
        raise ValueError("invalid truth value {!r}".format(value))


class Section:
    """
    Base class for one group of the input, e.g. [MODEL] or [NETWORK].

    Subclasses read their keys with `get_value` in `__init__` and then call `delete`, so that a
    finished section only holds plain attributes.

    Args:
        name (str): Section name as it appears in the input.
        config (:obj:`configparser.ConfigParser`): Parsed input.
        pt (:obj:`ParallelTools`): Parallel tools instance, used for printing.
        infile (str): Path to the input file, or None for dictionary input.
        args (:obj:`argparse.Namespace`): Parsed command line arguments.
    """

    def __init__(self, name, config, pt, infile, args=None):
        self.name = name
        self.pt = pt
        self.infile = infile
        self._config = config
        self._args = args
        self.allowedkeys = None
        self._on = config.has_section(self.name.upper())
        if self._on is False:
            self.delete()
            raise ExitFunc

    def delete(self):
        del self._config
        del self._args

    def _check_section(self):
        for value_name in self._config[self.name]:
            if value_name in self.allowedkeys:
                continue
            else:
                raise RuntimeError(">>> Found unmatched variable in {} section of input: {}".format(self.name,
                                                                                                    value_name))

    def get_value(self, section, key, fallback, interpreter="str"):
        if interpreter == "str" or interpreter == "string":
            convert = str
        elif interpreter == "bool":
            convert = strtobool
        elif interpreter == "float":
            convert = float
        elif interpreter == "int" or interpreter == "integer":
            convert = int
        else:
            raise ValueError("{} is not an implemented interpreter.".format(interpreter))

        if section not in self._config:
            value = convert(fallback)
        else:
            value = convert(self._config.get(section, key, fallback=fallback))

        return value

    def infile_directory(self):
        """Directory of the input file; empty for dictionary input."""
        if not self.infile:
            return ''
        return path.dirname(path.abspath(self.infile))

    def outfile_directory(self):
        """Directory that output files are written to."""
        if self._args is not None and self._args.relative and self.infile:
            return self.infile_directory()
        return getcwd()

    def resolve_path(self, name):
        """Resolve a file name from the input relative to the input file directory."""
        if name is None or name == 'None':
            return None
        return path.join(self.infile_directory(), name)

    def check_path(self, name):
        if name is None or name == 'None':
            return None
        name = path.join(self.outfile_directory(), name)
        if self._args is None or self._args.overwrite is None:
            return name
        if not self._args.overwrite and path.exists(name):
            raise FileExistsError(f"File {name} already exists.")
        return name
