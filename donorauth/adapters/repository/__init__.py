"""Repository adapters - Donor store implementations."""

from .memory import InMemoryDonorStore
from .postgres import PostgresDonorStore, run_migrations

__all__ = ["InMemoryDonorStore", "PostgresDonorStore", "run_migrations"]
