"""
Core infrastructure modules for hashing, storage, ledger access and the off-chain index.
"""

from .errors import *
from .hashing import *
from .storage import *
from .ledger import *
from .utils import *
