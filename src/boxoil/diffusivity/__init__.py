from .base import *  # noqa
from .residual import *  # noqa
from .saturation import *  # noqa
