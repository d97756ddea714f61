# <!----------------BEGIN-HEADER------------------------------------>
# ## MBbpnn
# A Python package for evaluating many-body Behler-Parrinello neural network potentials of
# water clusters.
#
# This software is distributed under the GNU General Public License.
# <!-----------------END-HEADER------------------------------------->
print("")
print("    __  ___ ____  __                         ")
print("   /  |/  // __ )/ /_  ____  ____  ____      ")
print(r"  / /|_/ // __  / __ \/ __ \/ __ \/ __ \     ")
print(" / /  / // /_/ / /_/ / /_/ / / / / / / /     ")
print("/_/  /_//_____/_.___/ .___/_/ /_/_/ /_/      ")
print("                   /_/                       ")
print("-----------")
try:
    import numpy as np
    print("numpy version: ",np.__version__)
except Exception as e:
    print("Trouble importing numpy package, exiting...")
    raise e

try:
    import pandas as pd
    print("pandas version: ",pd.__version__)
except Exception as e:
    print("Trouble importing pandas package, exiting...")
    raise e

try:
    import torch
    print("torch version: ",torch.__version__)
except Exception as e:
    print("Trouble importing torch package, exiting...")
    raise e
print("-----------")
