"""Shop health monitor: edge-triggered catalog checks with cache remediation and alerting."""

__version__ = "0.1.0"
