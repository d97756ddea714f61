"""
Unit conversions used to bring network outputs into reporting units.

Each unit type maps unit names onto a common base; a conversion factor from `unit_a` to `unit_b`
is simply the ratio of the two base values.
"""

alt_names = {"energies": "energy",
             "gradient": "force",
             "gradients": "force",
             "forces": "force",
             "positions": "length",
             "position": "length"}

# Base units are eV and Angstrom.

unit_types = {
    "energy": {
        "eV": 1.0,
        "meV": 1.0e-3,
        "kcal_per_mol": 0.0433634,
        "kJ_per_mol": 0.0103643,
        "Hartree": 27.211386245988,
        "Rydberg": 13.605693122994,
    },
    "length": {
        "Angstrom": 1.0,
        "Bohr": 0.529177210903,
        "nm": 10.0,
    },
    "force": {
        "eV_per_Angstrom": 1.0,
        "kcal_per_mol_per_Angstrom": 0.0433634,
        "Hartree_per_Bohr": 27.211386245988/0.529177210903,
    },
}

conversions = {}


def rename_unit(this_unit):
    this_unit = "_per_".join(this_unit.split("/"))
    return "_".join(this_unit.split("*"))


def rename_unit_type(a_unit_type):
    a_unit_type = a_unit_type.lower()
    if a_unit_type in alt_names:
        a_unit_type = alt_names[a_unit_type]
    return a_unit_type


def create_conversion(a_unit_type, unit_a, unit_b):
    a_unit_type = rename_unit_type(a_unit_type)
    unit_a = rename_unit(unit_a)
    unit_b = rename_unit(unit_b)

    try:
        the_unit_type = unit_types[a_unit_type]
    except KeyError:
        raise KeyError("{} was not found in unit types".format(a_unit_type))

    try:
        numerator = the_unit_type[unit_a]
    except KeyError:
        raise KeyError("{} was not found in unit type {}".format(unit_a, a_unit_type))

    try:
        denominator = the_unit_type[unit_b]
    except KeyError:
        raise KeyError("{} was not found in unit type {}".format(unit_b, a_unit_type))

    return numerator/denominator


def convert(unit_type, unit_a=None, unit_b=None):
    """
    Conversion factor from `unit_a` to `unit_b`, cached per unit type.

    Args:
        unit_type (str or list): Unit type such as "energy", or a list [unit_type, unit_a, unit_b].
        unit_a (str): Unit to convert from, e.g. "eV".
        unit_b (str): Unit to convert to, e.g. "kcal/mol".

    Returns:
        float: Multiply a value in `unit_a` by this factor to obtain it in `unit_b`.
    """
    if isinstance(unit_type, list):
        unit_type, unit_a, unit_b = [x for x in unit_type]

    try:
        return conversions[unit_type][unit_a][unit_b]
    except KeyError:
        if unit_type not in conversions:
            conversions[unit_type] = {}
            conversions[unit_type][unit_a] = {}
            conversions[unit_type][unit_a][unit_b] = create_conversion(unit_type, unit_a, unit_b)
        elif unit_a not in conversions[unit_type]:
            conversions[unit_type][unit_a] = {}
            conversions[unit_type][unit_a][unit_b] = create_conversion(unit_type, unit_a, unit_b)
        elif unit_b not in conversions[unit_type][unit_a]:
            conversions[unit_type][unit_a][unit_b] = create_conversion(unit_type, unit_a, unit_b)
        return conversions[unit_type][unit_a][unit_b]
