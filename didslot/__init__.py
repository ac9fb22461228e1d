"""didslot: DID document storage in contract slot storage.

Uploads an opaque document (typically a W3C DID document) into the
fixed-size storage slots of a deployed contract:
  - Exact rent estimate funding the up-front slot payment
  - Slot partitioning and call-sized chunking with a reassembly check
  - Atomic write batches bounded by the per-group operation cap
  - begin / upload / finish driven by the contract's metadata record,
    resumable after any interruption
  - Hash-chained local upload journal
  - SQLite-backed local network with Ed25519 signing via PyNaCl
"""

__version__ = "0.1.0"
__description__ = "Slot storage uploader for DID documents"

from didslot.core.orchestrator import UploadContext, UploadOrchestrator
from didslot.cli.app import app as cli

__all__ = ["UploadOrchestrator", "UploadContext", "cli", "__version__"]
