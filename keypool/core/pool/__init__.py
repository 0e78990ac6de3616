from keypool.core.pool.credentials import CredentialPool, parse_credentials, redact
from keypool.core.pool.ordering import OrderingStrategy, RoundRobinOrdering, ShuffleOrdering
from keypool.core.pool.policy import ModelPolicy, PolicyTable

__all__ = [
    "CredentialPool",
    "ModelPolicy",
    "OrderingStrategy",
    "PolicyTable",
    "RoundRobinOrdering",
    "ShuffleOrdering",
    "parse_credentials",
    "redact",
]
