"""TOTPVault bulk import and export."""

from totpvault.transfer.orchestrator import ImportExportOrchestrator

__all__ = ["ImportExportOrchestrator"]
