"""
Provenance services: metadata synthesis, registration, licensing, royalties and metadata reads.
"""

from .knowledge import *
from .metadata import *
from .registration import *
from .licensing import *
from .royalty import *
from .provenance import *
