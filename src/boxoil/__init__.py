"""
*BOXOIL*

Black-oil box-scheme discretization and explicit, CFL-limited saturation transport.
"""

from ._precision import *  # noqa
from .errors import *  # noqa
from .constants import *  # noqa
from .config import *  # noqa
from .types import *  # noqa
from .grids import *  # noqa
from .pvt import *  # noqa
from .relperm import *  # noqa
from .indices import *  # noqa
from .velocity import *  # noqa
from .states import *  # noqa
from .models import *  # noqa
from .diffusivity import *  # noqa
from .timing import *  # noqa
from .simulate import *  # noqa
from .stores import *  # noqa
from .scenarios import *  # noqa
