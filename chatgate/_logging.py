# =============================================================================
# chatgate -- Package Logger
# =============================================================================

import logging

logger = logging.getLogger("chatgate")
