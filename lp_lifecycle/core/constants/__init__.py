from lp_lifecycle.core.constants.chains import SUPPORTED_CHAINS
from lp_lifecycle.core.constants.contracts import ZERO_ADDRESS

__all__ = ["SUPPORTED_CHAINS", "ZERO_ADDRESS"]
