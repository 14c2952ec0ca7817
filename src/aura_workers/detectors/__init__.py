# Import all detectors so they register themselves.
# ORDER MATTERS: the engine runs detectors in registration order.
from . import consistency  # noqa: F401
from . import reduction  # noqa: F401
from . import correlation  # noqa: F401
from . import abstinence  # noqa: F401
