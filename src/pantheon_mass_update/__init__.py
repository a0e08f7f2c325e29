"""
Batch-apply pending upstream updates across Pantheon sites
"""

SERVICE_NAME = "pantheon-mass-update"
METRICS_NAMESPACE = "PantheonMassUpdate"

__version__ = "1.0.0"
