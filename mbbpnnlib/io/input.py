import configparser
import argparse
from mbbpnnlib.io.sections.section_factory import new_section
from pathlib import Path


class Config():
    """
    Class for storing input settings in a `config` instance. If given a path to an input script, we
    use Python's native ConfigParser to parse the settings. If given a nested dictionary, the
    sections are determined from the first keys and specific settings from the nested keys.

    Args:
        pt: A ParallelTools instance.
        input: Optional input can either be a filename or a dictionary.
        arguments_lst: List of args that can be supplied at the command line.

    Attributes:
        infile: String for optional input filename. Defaults to None.
        indict: Dictionary for optional input dictionary of settings, to replace input file.
            Defaults to None.
        sections: Dictionary of parsed sections keyed by section name.
    """

    # Sections that fall back to default values when absent from the input.
    default_sections = ["MODEL", "SWITCH", "OUTFILE"]

    def __init__(self, pt, input=None, arguments_lst: list = []):
        self.pt = pt
        self.input = input
        self.infile = None
        self.indict = None
        self.args = None
        self._original_config = None
        self.parse_cmdline(arguments_lst=arguments_lst)
        self.sections = {}
        self.parse_config()

    def parse_cmdline(self, arguments_lst: list = []):
        """ Parse command line args if using executable mode, or a list if using library mode. """
        parser = argparse.ArgumentParser(prog="mbbpnn")
        if (self.input is None):
            parser.add_argument("infile", action="store",
                                help="Input file with model, descriptor and network options")

        parser.add_argument("--xyz", "-x", action="store", dest="xyzfile", default=None,
                            help="Multi-frame XYZ file with one cluster configuration per frame.")
        parser.add_argument("--gradient", "-g", action="store_true", dest="gradient",
                            help="Also compute the gradient of the energy w.r.t. coordinates.")
        parser.add_argument("--topology", "-t", action="store", dest="topology", default=None,
                            help="Override the topology given in the MODEL section.")
        parser.add_argument("--overwrite", action="store_true", dest="overwrite",
                            help="Allow overwriting existing files")
        parser.add_argument("--verbose", "-v", action="store_true", dest="verbose",
                            default=False, help="Show more detailed information about processing")
        parser.add_argument("--relative", "-r", action="store_true", dest="relative",
                            help='''Put output files in the directory of INFILE. If this flag
                            is not present, the files are stored in the
                            current working directory.''')
        parser.add_argument("--keyword", "-k", nargs=3, metavar=("GROUP", "NAME", "VALUE"),
                            action="append", dest="keyword_replacements",
                            help='''Replace or add input keyword group GROUP, key NAME,
                            with value VALUE. Type carefully; a misspelled key name or value
                            may be silently ignored.''')
        parser.add_argument("--screen", "-sc", action="store_false", dest="screen",
                            help="Do not print mbbpnn output to screen.")
        parser.add_argument("--log", action="store", dest="log",
                            default=None, help="Write mbbpnn log to this file.")
        parser.add_argument("--screen2file", "-s2f", action="store", dest="screen2file",
                            default=None, help="Print screen to a file")

        if arguments_lst or self.input is not None:
            # Library mode: never read the arguments of the hosting process.
            self.args = parser.parse_args(arguments_lst)
        else:
            self.args = parser.parse_args()

    def parse_config(self):
        self._original_config = configparser.ConfigParser(inline_comment_prefixes='#')
        self._original_config.optionxform = str
        if self.input is not None:
            if (isinstance(self.input, (str, Path))):
                self.infile = str(self.input)
            elif (isinstance(self.input, dict)):
                self.indict = self.input
            else:
                raise TypeError(f"Input must be a filename or a dictionary, got {type(self.input)}")
        else:
            self.infile = self.args.infile

        if (self.infile is not None):
            if not Path(self.infile).is_file():
                raise FileNotFoundError(f"Input file {self.infile} not found")
            self._original_config.read(self.infile)
        elif (self.indict is not None):
            for key1, data1 in self.indict.items():
                self._original_config[key1] = {}
                for key2, data2 in data1.items():
                    self._original_config[key1]["{}".format(key2)] = str(data2)

        # This adds keyword replacements to the config.
        if self.args.keyword_replacements:
            for kwg, kwn, kwv in self.args.keyword_replacements:
                if kwg not in self._original_config:
                    raise ValueError(f"{kwg} is not a valid keyword group")
                self._original_config[kwg][kwn] = kwv

        # Default missing sections to empty dicts which will prompt default values.
        for name in Config.default_sections:
            if name not in self._original_config:
                self._original_config[name] = {}

        for name in ("DESCRIPTOR", "NETWORK"):
            if name not in self._original_config:
                raise RuntimeError(f">>> Input is missing the required {name} section")

        self._set_sections(self._original_config)

    def _set_sections(self, tmp_config):
        sections = tmp_config.sections()
        for section in sections:
            self.sections[section] = new_section(section, tmp_config, self.pt, self.infile, self.args)

    def view_state(self):
        """Print the settings of every section to screen."""
        skip_print = ["name", "allowedkeys", "pt", "infile"]
        self.pt.single_print("----> View of mbbpnn settings")
        for sname, section in self.sections.items():
            self.pt.single_print(f"    [{sname}]")
            for key, val in vars(section).items():
                if key in skip_print or key.startswith("_"):
                    continue
                self.pt.single_print("\t{0:20} = {1}".format(key, val))
            self.pt.single_print("")
