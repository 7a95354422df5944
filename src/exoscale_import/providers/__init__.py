"""Storage and compute providers for template imports."""

from .compute_provider import ExoscaleComputeProvider
from .exoscale_client import (
    ExoscaleAPIError,
    ExoscaleAuthError,
    ExoscaleClient,
    ExoscaleNotFoundError,
    ExoscaleTimeoutError,
    RetryPolicy,
)
from .inmemory import InMemoryComputeProvider, InMemoryObjectStorage
from .protocols import (
    ComputeProvider,
    ObjectNotFoundError,
    ObjectStorage,
    OperationHandle,
    OperationStatus,
    ProviderHandles,
    StorageError,
    TemplateSpec,
)
from .sos_storage import SOSObjectStorage

__all__ = [
    "ComputeProvider",
    "ExoscaleAPIError",
    "ExoscaleAuthError",
    "ExoscaleClient",
    "ExoscaleComputeProvider",
    "ExoscaleNotFoundError",
    "ExoscaleTimeoutError",
    "InMemoryComputeProvider",
    "InMemoryObjectStorage",
    "ObjectNotFoundError",
    "ObjectStorage",
    "OperationHandle",
    "OperationStatus",
    "ProviderHandles",
    "RetryPolicy",
    "SOSObjectStorage",
    "StorageError",
    "TemplateSpec",
]
