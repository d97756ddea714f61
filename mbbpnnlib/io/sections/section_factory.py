from mbbpnnlib.io.sections.sections import Section
from mbbpnnlib.io.error import ExitFunc
from mbbpnnlib.io.sections.model import Model
from mbbpnnlib.io.sections.descriptor import Descriptor
from mbbpnnlib.io.sections.network import Network
from mbbpnnlib.io.sections.switch import Switch
from mbbpnnlib.io.sections.outfile import Outfile


def new_section(section, config, pt, infile, args):
    """Section Factory"""
    instance = search(section)
    try:
        instance.__init__(section, config, pt, infile, args)
    except ExitFunc:
        pass
    return instance


def search(section):
    instance = None
    for cls in Section.__subclasses__():
        if cls.__name__.lower() == section.lower():
            instance = Section.__new__(cls)

    if instance is None:
        raise IndexError("{} was not found in mbbpnn sections".format(section))
    else:
        return instance
