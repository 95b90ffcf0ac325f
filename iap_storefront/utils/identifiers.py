"""Transaction ID generation for the local purchase provider.

Format: {prefix}_txn_{uuid}_{timestamp}
Example: storefront_txn_a1b2c3d4e5f6a7b8_1700000000000
"""

import time
import uuid

DEFAULT_PREFIX = "storefront"


def generate_transaction_id(prefix: str = DEFAULT_PREFIX) -> str:
    """Generate a unique transaction ID.

    Args:
        prefix: Transaction ID prefix

    Returns:
        Unique transaction ID string
    """
    token_id = uuid.uuid4().hex[:16]
    timestamp = int(time.time() * 1000)
    return f"{prefix}_txn_{token_id}_{timestamp}"
